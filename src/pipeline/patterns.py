"""
src/pipeline/patterns.py - rule pattern compiler

A rule pattern is written either delimited, "/body/flags", or as a bare body:

    "/(\\d+) HP/gi"   -> body "(\\d+) HP", replace every match, ignore case
    "Hello"           -> body "Hello", replace every match
    ""                -> matches nothing

Supported flags:
    g  replace every match (without it only the first match is replaced)
    i  ignore case
    m  ^ and $ match at line breaks
    s  "." also matches newlines
    u  accepted for compatibility, Python patterns are always unicode
    y  sticky: each match must start exactly where the previous one ended

Bodies are compiled with Python's `re`. A few common spellings from browser
regex dialects are rewritten first: (?<name>...) named groups, \\k<name>
back-references and the [^] "any character" class. Without the m flag a bare
$ is rewritten to \\Z, so it only matches at the very end of the text and not
before a trailing newline.

\\d, \\w and \\s keep Python's unicode meaning (a browser's \\d and \\w are ASCII
only).

Replacement templates follow the same browser conventions:
    $1 .. $99   capturing group (unmatched groups expand to "")
    $<name>     named group
    $&          the whole match
    $`  $'      text before / after the match
    $$          a literal "$"
"""


import re
from typing import List, Optional, Tuple


class PatternSyntaxError(ValueError):
    """Rule body is not a valid pattern. Carries the engine's message."""


class SubstitutionError(RuntimeError):
    """A compiled pattern failed while substituting."""


_DELIMITED = re.compile(r"/(.*?)/([gimsuy]*)")
_NAMED_GROUP = re.compile(r"\(\?<(?![=!])")
_NAMED_BACKREF = re.compile(r"\\k<(\w+)>")
_DIGITS = "0123456789"

_FLAG_BITS = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
}


class CompiledPattern:
    """Executable matcher for one rule pattern."""

    def __init__(self, regex: Optional[re.Pattern], *, global_: bool = True, sticky: bool = False):

        self.regex = regex
        self.global_ = global_
        self.sticky = sticky

    @property
    def matches_nothing(self) -> bool:

        return self.regex is None

    def substitute(self, text: str, template: str) -> Tuple[str, int]:
        """
        Replace matches in `text` with `template`, returning (new_text, count).

        Matching and counting happen in a single pass.
        """

        if self.regex is None:
            return text, 0

        pieces: List[str] = []
        count = 0
        last_end = 0
        pos = 0

        try:
            while pos <= len(text):
                m = self.regex.match(text, pos) if self.sticky else self.regex.search(text, pos)
                if m is None:
                    break

                pieces.append(text[last_end:m.start()])
                pieces.append(expand_template(template, m, text))
                last_end = m.end()
                count += 1

                if not self.global_:
                    break

                # Empty matches must still move forward
                pos = m.end() if m.end() > m.start() else m.end() + 1
        except (re.error, RecursionError, OverflowError) as exc:
            raise SubstitutionError(str(exc)) from exc

        pieces.append(text[last_end:])

        return "".join(pieces), count


# --- Compilation ---------------------------------------------------------------
def _translate_body(body: str) -> str:
    """Rewrite browser-dialect spellings Python's `re` does not accept."""

    body = body.replace("[^]", r"[\s\S]")
    body = _NAMED_GROUP.sub("(?P<", body)
    body = _NAMED_BACKREF.sub(r"(?P=\1)", body)

    return body

def _anchor_end(body: str) -> str:
    """Rewrite unescaped "$" outside character classes to "\\Z"."""

    out: List[str] = []
    in_class = False
    i = 0
    while i < len(body):
        c = body[i]
        if c == "\\":
            out.append(body[i:i + 2])
            i += 2
            continue
        if in_class:
            if c == "]":
                in_class = False
        elif c == "[":
            in_class = True
        elif c == "$":
            c = r"\Z"
        out.append(c)
        i += 1

    return "".join(out)

def split_pattern(raw: str) -> Tuple[str, str]:
    """
    Split a raw pattern into (body, flags).

    Bare patterns come back with flags "g".
    """

    m = _DELIMITED.fullmatch(raw)
    if m:
        return m.group(1), m.group(2)

    return raw, "g"

def compile_pattern(raw: str) -> CompiledPattern:
    """
    Compile a rule's raw pattern string.

    Raises:
        PatternSyntaxError: the body (or its flags) is not valid.
    """

    if not raw:
        return CompiledPattern(None)

    body, flags = split_pattern(raw)

    if len(set(flags)) != len(flags):
        raise PatternSyntaxError(f"Invalid flags supplied to pattern '{flags}'")

    bits = 0
    for flag in flags:
        bits |= _FLAG_BITS.get(flag, 0)

    translated = _translate_body(body)
    if "m" not in flags:
        translated = _anchor_end(translated)

    try:
        regex = re.compile(translated, bits)
    except re.error as exc:
        raise PatternSyntaxError(f"Invalid pattern /{body}/: {exc}") from exc

    return CompiledPattern(regex, global_="g" in flags, sticky="y" in flags)


# --- Replacement templates -----------------------------------------------------
def _group_ref(template: str, i: int, groups: int) -> Tuple[Optional[int], int]:
    """Resolve "$n" / "$nn" at template[i] (the "$"). Returns (group, width)."""

    two = template[i + 1:i + 3]
    if len(two) == 2 and all(c in _DIGITS for c in two) and 1 <= int(two) <= groups:
        return int(two), 3

    one = int(template[i + 1])
    if 1 <= one <= groups:
        return one, 2

    return None, 1

def expand_template(template: str, match: re.Match, text: str) -> str:
    """Expand a replacement template for a single match."""

    if "$" not in template:
        return template

    out: List[str] = []
    groups = match.re.groups
    named = match.re.groupindex
    i = 0
    n = len(template)

    while i < n:
        ch = template[i]
        if ch != "$" or i + 1 >= n:
            out.append(ch)
            i += 1
            continue

        nxt = template[i + 1]

        if nxt == "$":
            out.append("$")
            i += 2
        elif nxt == "&":
            out.append(match.group(0))
            i += 2
        elif nxt == "`":
            out.append(text[:match.start()])
            i += 2
        elif nxt == "'":
            out.append(text[match.end():])
            i += 2
        elif nxt in _DIGITS:
            idx, width = _group_ref(template, i, groups)
            if idx is None:
                out.append("$")
            else:
                out.append(match.group(idx) or "")
            i += width
        elif nxt == "<" and named:
            close = template.find(">", i + 2)
            if close == -1:
                out.append("$<")
                i += 2
                continue
            name = template[i + 2:close]
            out.append((match.group(name) if name in named else None) or "")
            i = close + 1
        else:
            out.append("$")
            i += 1

    return "".join(out)
