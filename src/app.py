"""
src/app.py
"""


import logging
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import gradio as gr

from config import DEBOUNCE_SECONDS, DEFAULT_LANGUAGE, Language, Settings
from orchestrator import discovery, router
from orchestrator.errors import OrchestratorError
from orchestrator.models import ConversationTurn
from pipeline.executor import run_pipeline
from pipeline.models import PipelineResult
from pipeline.scheduler import DebouncedScheduler
from tools import exports, rules as rule_tools
from workspace.loader import Workspace, load_workspace
from workspace.selectors import sorted_rules


logger = logging.getLogger(__name__)

APP_TITLE = "Tavern Regex Debugger"
APP_DESC = (
    "Chain regex rules, watch the preview update as you type, "
    "or ask the assistant to write and fix rules for you."
)
THINKING_ERROR = {
    "en": "Sorry, an error occurred while thinking.",
    "zh": "抱歉，思考过程中发生错误。",
}


# --- Session state -------------------------------------------------------------
def _load_session() -> Workspace:

    try:
        return load_workspace()
    except FileNotFoundError:
        logger.info("No seed workspace found; starting empty")
        return Workspace()


SESSION = _load_session()
SCHEDULER = DebouncedScheduler(DEBOUNCE_SECONDS)

rule_tools.attach_workspace(SESSION)
SESSION.subscribe(lambda ws: SCHEDULER.schedule(lambda: run_pipeline(ws.source_text, ws.snapshot_rules())))


def _settings(api_key: str, base_url: str, model: Optional[str], language: str) -> Settings:

    base = Settings.from_env()
    return Settings(
        api_key=api_key or base.api_key,
        base_url=base_url if base_url else base.base_url,
        model=model or base.model,
        language=language or DEFAULT_LANGUAGE.value,
    )

def _render(result: PipelineResult) -> Tuple[str, List[Dict[str, Any]]]:

    return result.final_text, [d.model_dump() for d in result.diagnostics]

def _rule_choices() -> List[Tuple[str, str]]:

    return [(f"{idx + 1}. {r.name}{'' if r.active else ' (off)'}", r.id) for idx, r in enumerate(sorted_rules(SESSION.rules))]

def _rule_fields(rule_id: Optional[str]):

    rule = SESSION.find(rule_id) if rule_id else None
    if rule is None:
        return "", "", "", False
    return rule.name, rule.pattern, rule.replacement, rule.active

def _selector(rule_id: Optional[str]):

    return gr.update(choices=_rule_choices(), value=rule_id)


# --- Handlers ------------------------------------------------------------------
def handle_tick():
    """Debounce timer: only fires when the pending run's window has elapsed."""

    result = SCHEDULER.poll()
    if result is None:
        return gr.update(), gr.update()
    return _render(result)

def handle_source_change(text: str) -> None:

    if text != SESSION.source_text:
        SESSION.set_source_text(text)

def handle_select(rule_id: Optional[str]):

    return _rule_fields(rule_id)

def handle_add(language: str):

    rule = SESSION.add_rule("新规则" if language == Language.ZH.value else "New Rule")
    return (_selector(rule.id),) + _rule_fields(rule.id)

def handle_save(rule_id: Optional[str], name: str, pattern: str, replacement: str, active: bool):

    if rule_id:
        SESSION.update_rule(rule_id, name=name, pattern=pattern, replacement=replacement, active=active)
    return _selector(rule_id)

def handle_delete(rule_id: Optional[str]):

    if rule_id and SESSION.find(rule_id):
        SESSION.delete_rule(rule_id)
    return (_selector(None),) + _rule_fields(None)

def handle_move(rule_id: Optional[str], step: int):

    ids = [r.id for r in sorted_rules(SESSION.rules)]
    if rule_id in ids:
        idx = ids.index(rule_id)
        target = min(max(idx + step, 0), len(ids) - 1)
        if target != idx:
            SESSION.move_rule(idx, target)
    return _selector(rule_id)

def handle_import(path: Optional[str]):

    if path:
        try:
            SESSION.extend_rules(exports.load_rules(path, start_order=SESSION.next_order()))
        except ValueError as exc:
            gr.Warning(f"Import failed: {exc}")
    return _selector(None)

def handle_clear():

    SESSION.reset()
    return (_selector(None),) + _rule_fields(None) + ("",)

def handle_restore():

    seed = _load_session()
    SESSION.reset(seed.source_text, seed.rules)
    return (_selector(None),) + _rule_fields(None) + (SESSION.source_text,)

def handle_export() -> str:

    path = Path(tempfile.mkdtemp()) / exports.EXPORT_FILENAME
    return exports.export_json(sorted_rules(SESSION.rules), path)

async def handle_fetch_models(api_key: str, base_url: str, model: Optional[str], language: str):

    try:
        models = await discovery.list_models(_settings(api_key, base_url, model, language))
    except OrchestratorError as exc:
        gr.Warning(f"Could not fetch models: {exc}")
        return gr.update()
    return gr.update(choices=models, value=model if model in models else models[0])

async def handle_chat(message: str, history: List[Dict[str, Any]], api_key: str, base_url: str, model: Optional[str], language: str):
    """One user message. The next message waits for this call to settle (send button is locked)."""

    message = (message or "").strip()
    if not message:
        return "", history, gr.update(), gr.update()

    history = list(history or []) + [{"role": "user", "content": message}]
    turns = [ConversationTurn(role=m["role"], content=m["content"]) for m in history if m["role"] in ("user", "assistant")]

    try:
        reply = await router.send(
            turns, SESSION.snapshot_rules(), SESSION.source_text,
            _settings(api_key, base_url, model, language), rule_tools.execute_tool,
        )
    except Exception:
        logger.exception("Chat handler failed")
        reply = THINKING_ERROR.get(language, THINKING_ERROR["en"])

    history.append({"role": "assistant", "content": reply})
    return "", history, _selector(None), SESSION.source_text


# --- Layout --------------------------------------------------------------------
def app():
    with gr.Blocks(title=APP_TITLE) as demo:
        gr.Markdown(f"# {APP_TITLE}")
        gr.Markdown(APP_DESC)

        with gr.Accordion("Settings", open=False):
            with gr.Row():
                api_key = gr.Textbox(label="API Key", type="password")
                base_url = gr.Textbox(label="Base URL", placeholder="empty = Gemini direct, otherwise OpenAI-compatible proxy")
                model = gr.Dropdown(label="Model", choices=[], allow_custom_value=True)
                language = gr.Radio(label="Language", choices=[l.value for l in Language], value=DEFAULT_LANGUAGE.value)
            fetch = gr.Button("Fetch models")

        with gr.Row():
            with gr.Column(scale=1):
                selector = gr.Dropdown(label="Rules", choices=_rule_choices())
                with gr.Row():
                    add = gr.Button("Add")
                    up = gr.Button("Up")
                    down = gr.Button("Down")
                    delete = gr.Button("Delete", variant="stop")
                name = gr.Textbox(label="Name")
                pattern = gr.Textbox(label="Regex", placeholder="/pattern/flags")
                replacement = gr.Code(label="Replacement Template (HTML)", language="html")
                active = gr.Checkbox(label="Active")
                save = gr.Button("Save rule", variant="primary")
                with gr.Row():
                    upload = gr.File(label="Import", file_types=[".json"], type="filepath")
                    export = gr.Button("Export")
                download = gr.File(label="Export file")
                with gr.Row():
                    clear = gr.Button("Clear all", variant="stop")
                    restore = gr.Button("Restore defaults")

            with gr.Column(scale=2):
                source = gr.Textbox(label="Source Text", value=SESSION.source_text, lines=10)
                initial_html, initial_logs = _render(run_pipeline(SESSION.source_text, SESSION.rules))
                preview = gr.HTML(initial_html)
                logs = gr.JSON(initial_logs, label="Diagnostics")

            with gr.Column(scale=1):
                chatbot = gr.Chatbot(type="messages", label="Assistant")
                prompt = gr.Textbox(label="Message", lines=2)
                send = gr.Button("Send", variant="primary")

        settings_inputs = [api_key, base_url, model, language]
        fields = [name, pattern, replacement, active]

        gr.Timer(DEBOUNCE_SECONDS / 2).tick(handle_tick, outputs=[preview, logs])
        source.change(handle_source_change, inputs=[source])
        selector.change(handle_select, inputs=[selector], outputs=fields)
        add.click(handle_add, inputs=[language], outputs=[selector] + fields)
        save.click(handle_save, inputs=[selector] + fields, outputs=[selector])
        delete.click(handle_delete, inputs=[selector], outputs=[selector] + fields)
        up.click(lambda rid: handle_move(rid, -1), inputs=[selector], outputs=[selector])
        down.click(lambda rid: handle_move(rid, 1), inputs=[selector], outputs=[selector])
        upload.upload(handle_import, inputs=[upload], outputs=[selector])
        export.click(handle_export, outputs=[download])
        clear.click(handle_clear, outputs=[selector] + fields + [source])
        restore.click(handle_restore, outputs=[selector] + fields + [source])
        fetch.click(handle_fetch_models, inputs=settings_inputs, outputs=[model])
        send.click(
            handle_chat,
            inputs=[prompt, chatbot] + settings_inputs,
            outputs=[prompt, chatbot, selector, source],
            concurrency_limit=1,
        )

    return demo


if __name__ == "__main__":

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app().launch()

# EOF
