"""
src/orchestrator/prompts.py

System preamble template and user-facing notices per display language.
"""


from typing import Dict, Iterable

from config import Language
from pipeline.models import Rule


SYSTEM_TEMPLATE = """You are an expert Regex & HTML Engineer for the "Tavern Regex Debugger" app.
User is building a regex replacement pipeline to convert raw text into rich HTML UI.

CURRENT STATE:
=== Source Text ===
{source_text}

=== Current Rules ({rule_count} total) ===
{rules}

Your goal is to help the user write correct regex, fix HTML structure, and debug pipeline issues.

CRITICAL INSTRUCTIONS:
1. **LANGUAGE**: You MUST reply in {language_name}.
2. **TOOL USAGE**: You have tools to DIRECTLY MODIFY the app state:
   - updateRule: Update existing rules (name, regex, replace)
   - addRule: Create new rules
   - updateSourceText: Modify the source text
3. **WHEN TO USE TOOLS**:
   - When user asks to "fix", "change", "update", "add" anything
   - When you identify issues that need correction
   - DO NOT just tell the user what to change - USE THE TOOLS to make the changes
4. **AFTER TOOL USE**: Briefly confirm what you changed in {language_short}.
5. **RULE IDs**: Always use the exact ID from the current rules list above.
"""

RULE_TEMPLATE = """[{index}] ID: {id}
    Name: {name}
    Active: {active}
    Regex: {pattern}
    Replace: {replacement}"""

LANGUAGE_NAMES: Dict[str, Dict[str, str]] = {
    "en": {"long": "ENGLISH", "short": "English"},
    "zh": {"long": "SIMPLIFIED CHINESE (中文)", "short": "Chinese"},
}

NOTICES: Dict[str, Dict[str, str]] = {
    "en": {
        "no_api_key": "Error: API Key not configured. Please enter your API Key in settings.",
        "rate_limited": "Too many requests (429). Please retry manually later.",
        "communication_error": "Communication Error: {detail}. Check API Key and Base URL settings.",
        "max_turns": "Maximum tool calls reached",
        "no_content": "(no content)",
    },
    "zh": {
        "no_api_key": "错误：未配置 API Key。请点击右上角设置按钮输入您的 API Key。",
        "rate_limited": "请求过多 (429)，请稍后手动重试。",
        "communication_error": "通信错误: {detail}。请检查 API Key 和 Base URL 设置。",
        "max_turns": "已达到最大工具调用次数",
        "no_content": "(无内容)",
    },
}


def notice(language: Language, key: str, **fields: str) -> str:

    table = NOTICES.get(Language(language).value, NOTICES["en"])

    return table[key].format(**fields)

def render_rules(rules: Iterable[Rule]) -> str:

    return "\n\n".join(
        RULE_TEMPLATE.format(
            index=i + 1,
            id=r.id,
            name=r.name,
            active="true" if r.active else "false",
            pattern=r.pattern,
            replacement=r.replacement,
        )
        for i, r in enumerate(rules)
    )

def build_system_prompt(rules: Iterable[Rule], source_text: str, language: Language) -> str:
    """Render the preamble once per call from the rule/text snapshot."""

    rules = list(rules)
    names = LANGUAGE_NAMES[Language(language).value]

    return SYSTEM_TEMPLATE.format(
        source_text=source_text,
        rule_count=len(rules),
        rules=render_rules(rules),
        language_name=names["long"],
        language_short=names["short"],
    )
