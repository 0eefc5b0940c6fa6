"""Core pipeline for html2llms."""

from __future__ import annotations

import enum
import json
import logging
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

import soupsieve as sv
from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.builder import ParserRejectedMarkup
from bs4.element import PreformattedString
from markdownify import MarkdownConverter

LOG = logging.getLogger("html2llms")

ASIDE_VARIANTS = ("note", "tip", "caution", "danger")
MINIFY_FLAGS = ASIDE_VARIANTS + ("details", "whitespace")
CUSTOM_SELECTORS_KEY = "customSelectors"
RAW_MDX_KEY = "rawMDX"

DIFF_LINE = sv.compile("div.ec-line.ins, div.ec-line.del")
SR_ONLY = sv.compile(".sr-only")
SR_ONLY_SPAN = sv.compile("span.sr-only")

_WHITESPACE_RE = re.compile(r"\s+")


class WidgetKind(enum.Enum):
    CODE_SAMPLE = "code-sample"
    TABS = "tabs"
    FILE_TREE = "file-tree"
    ASIDE = "aside"


WIDGET_TAGS = {
    "starlight-tabs": WidgetKind.TABS,
    "starlight-file-tree": WidgetKind.FILE_TREE,
}
WIDGET_CLASSES = (
    ("expressive-code", WidgetKind.CODE_SAMPLE),
    ("starlight-aside", WidgetKind.ASIDE),
)


@dataclass(frozen=True)
class MinifyOptions:
    note: bool = True
    tip: bool = True
    caution: bool = False
    danger: bool = False
    details: bool = True
    whitespace: bool = True
    custom_selectors: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {flag: getattr(self, flag) for flag in MINIFY_FLAGS}
        data[CUSTOM_SELECTORS_KEY] = list(self.custom_selectors)
        return data


DEFAULT_MINIFY_OPTIONS = MinifyOptions()


@dataclass(frozen=True)
class LlmsTxtConfig:
    minify: MinifyOptions = DEFAULT_MINIFY_OPTIONS
    raw_mdx: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"minify": self.minify.to_dict(), RAW_MDX_KEY: self.raw_mdx}


DEFAULT_CONFIG = LlmsTxtConfig()


@dataclass
class DocEntry:
    id: str
    body: Optional[str] = None


@dataclass
class ProcessingContext:
    """Per-page state for one pipeline run.

    ``selectors`` lists ``details`` first when that flag is set, followed by
    the custom selectors in configuration order. ``aside_variants`` holds the
    aside variants flagged for removal.
    """

    minify: bool
    selectors: List[str]
    aside_variants: Tuple[str, ...]
    compiled: List[Any] = field(default_factory=list, repr=False)

    @classmethod
    def create(cls, options: MinifyOptions, minify: bool) -> "ProcessingContext":
        selectors = list(options.custom_selectors)
        if options.details:
            selectors.insert(0, "details")
        variants = tuple(variant for variant in ASIDE_VARIANTS if getattr(options, variant))
        return cls(
            minify=minify,
            selectors=selectors,
            aside_variants=variants,
            compiled=[sv.compile(selector) for selector in selectors],
        )

    @property
    def has_criteria(self) -> bool:
        return bool(self.compiled or self.aside_variants)

    def should_remove(self, tag: Tag) -> bool:
        for pattern in self.compiled:
            if pattern.match(tag):
                return True
        if widget_kind(tag) is WidgetKind.ASIDE:
            classes = _class_tokens(tag)
            for variant in self.aside_variants:
                if f"starlight-aside--{variant}" in classes:
                    return True
        return False


def _resolve_log_level(verbose: bool, debug: bool) -> int:
    return logging.DEBUG if debug else (logging.INFO if verbose else logging.WARNING)


def _configure_html2llms_logger(level: int) -> None:
    LOG.setLevel(level)
    LOG.propagate = False
    if not LOG.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
        handler.setLevel(level)
        LOG.addHandler(handler)
    else:
        for handler in LOG.handlers:
            handler.setLevel(level)
            if handler.formatter is None:
                handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))


def setup_logging(verbose: bool, debug: bool) -> None:
    level = _resolve_log_level(verbose, debug)
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")
    _configure_html2llms_logger(level)


def safe_write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8", newline="\n")


def _validate_selectors(value: Any) -> Tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"Minify option {CUSTOM_SELECTORS_KEY!r} must be a list of selectors")
    selectors: List[str] = []
    for selector in value:
        if not isinstance(selector, str) or not selector.strip():
            raise ValueError(f"Invalid minify selector: {selector!r}")
        try:
            sv.compile(selector)
        except sv.SelectorSyntaxError as exc:
            raise ValueError(f"Invalid minify selector {selector!r}: {exc}") from exc
        selectors.append(selector)
    return tuple(selectors)


def resolve_minify_options(
    overrides: Optional[Mapping[str, Any]] = None,
    defaults: MinifyOptions = DEFAULT_MINIFY_OPTIONS,
) -> MinifyOptions:
    """Overlay user minify options on ``defaults``, key by key."""
    if overrides is None:
        return defaults
    if not isinstance(overrides, Mapping):
        raise ValueError("Minify options must be an object")

    values: Dict[str, Any] = {}
    for key, value in overrides.items():
        if key in MINIFY_FLAGS:
            if not isinstance(value, bool):
                raise ValueError(f"Minify option {key!r} must be a boolean")
            values[key] = value
        elif key in (CUSTOM_SELECTORS_KEY, "custom_selectors"):
            values["custom_selectors"] = _validate_selectors(value)
        else:
            LOG.warning("Ignoring unknown minify option: %s", key)
    return replace(defaults, **values)


def resolve_config(data: Optional[Mapping[str, Any]] = None) -> LlmsTxtConfig:
    if data is None:
        return DEFAULT_CONFIG
    if not isinstance(data, Mapping):
        raise ValueError("Configuration must be an object")

    raw_mdx = data.get(RAW_MDX_KEY, False)
    if not isinstance(raw_mdx, bool):
        raise ValueError(f"Option {RAW_MDX_KEY!r} must be a boolean")
    for key in data:
        if key not in ("minify", RAW_MDX_KEY):
            LOG.warning("Ignoring unknown option: %s", key)
    return LlmsTxtConfig(minify=resolve_minify_options(data.get("minify")), raw_mdx=raw_mdx)


def load_config_file(path: Path) -> LlmsTxtConfig:
    try:
        data_raw = json.loads(path.read_text(encoding="utf-8"))
    except Exception as exc:
        raise ValueError(f"Unable to read config file {path}: {exc}") from exc

    try:
        return resolve_config(data_raw)
    except ValueError as exc:
        raise ValueError(f"Invalid config file {path}: {exc}") from exc


def write_default_config(path: Path) -> None:
    safe_write_text(path, json.dumps(DEFAULT_CONFIG.to_dict(), ensure_ascii=False, indent=2) + "\n")


def _class_tokens(tag: Tag) -> List[str]:
    value = tag.get("class")
    if isinstance(value, str):
        return value.split()
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


def _is_text(node: Any) -> bool:
    return isinstance(node, NavigableString) and not isinstance(node, PreformattedString)


def widget_kind(node: Any) -> Optional[WidgetKind]:
    if not isinstance(node, Tag):
        return None
    kind = WIDGET_TAGS.get(node.name.lower())
    if kind is not None:
        return kind
    classes = _class_tokens(node)
    for class_name, class_kind in WIDGET_CLASSES:
        if class_name in classes:
            return class_kind
    return None


def collect_widgets(soup: Tag) -> Dict[WidgetKind, List[Tag]]:
    widgets: Dict[WidgetKind, List[Tag]] = {kind: [] for kind in WidgetKind}
    for tag in soup.find_all(True):
        kind = widget_kind(tag)
        if kind is not None:
            widgets[kind].append(tag)
    return widgets


def parse_fragment(html: str) -> BeautifulSoup:
    try:
        return BeautifulSoup(html, "html.parser")
    except ParserRejectedMarkup as exc:
        raise RuntimeError(f"Unable to parse HTML fragment: {exc}") from exc


def remove_matching(root: Tag, predicate: Callable[[Tag], bool]) -> int:
    """Remove every descendant subtree of ``root`` whose root tag matches.

    Walks top-down over a snapshot of each level's children, so descendants
    of a removed tag are never tested.
    """
    removed = 0
    for child in list(root.contents):
        if not isinstance(child, Tag):
            continue
        if predicate(child):
            child.decompose()
            removed += 1
        else:
            removed += remove_matching(child, predicate)
    return removed


def apply_minify_filter(soup: Tag, context: ProcessingContext) -> int:
    if not context.minify or not context.has_criteria:
        return 0
    removed = remove_matching(soup, context.should_remove)
    LOG.debug("Minify filter removed %d subtree(s)", removed)
    return removed


def _strip_terminal_label(instance: Tag) -> bool:
    figcaption = instance.select_one("figcaption")
    if figcaption is None:
        return False
    for child in figcaption.find_all(True, recursive=False):
        if SR_ONLY_SPAN.match(child):
            child.decompose()
            return True
    return False


def _mark_diff_line(line: Tag) -> bool:
    classes = line.get("class")
    if isinstance(classes, str):
        classes = classes.split()
    elif not isinstance(classes, list):
        return False
    marker = "+" if "ins" in classes else "-"
    span = line.select_one("span:not(.indent)")
    if span is None or not span.contents:
        return False
    first = span.contents[0]
    if not _is_text(first):
        return False
    first.replace_with(NavigableString(f"{marker}{first}"))
    return True


def improve_code_blocks(instances: Iterable[Tag]) -> int:
    """Re-encode Expressive Code metadata the way the Markdown converter reads it.

    ``data-language`` on ``<pre>`` becomes a ``language-*`` class on ``<code>``.
    Lines flagged ``ins``/``del`` get their ``+``/``-`` markers back and the
    block is classed ``language-diff``.
    """
    normalized = 0
    for instance in instances:
        _strip_terminal_label(instance)

        pre = instance.select_one("pre")
        code = instance.select_one("code")
        language = pre.get("data-language") if pre is not None else None
        if not language or code is None:
            continue

        classes = code.get("class")
        if not isinstance(classes, list):
            classes = []
            code["class"] = classes

        diff_lines = [line for line in code.find_all(True, recursive=False) if DIFF_LINE.match(line)]
        if language == "diff" or diff_lines:
            classes.append("language-diff")
            for line in diff_lines:
                _mark_diff_line(line)
        else:
            classes.append(f"language-{language}")
        normalized += 1

    LOG.debug("Normalized %d code block(s)", normalized)
    return normalized


def _tab_label(tab: Tag) -> str:
    return "".join(str(child).strip() for child in tab.children if _is_text(child) and child.strip())


def flatten_tabs(soup: BeautifulSoup, instances: Iterable[Tag]) -> int:
    flattened = 0
    for instance in instances:
        tabs = instance.select('[role="tab"]')
        panels = instance.select('[role="tabpanel"]')

        instance.name = "ul"
        instance.attrs = {}
        instance.clear()

        for tab, panel in zip(tabs, panels):
            label = soup.new_tag("p")
            label.string = _tab_label(tab)
            item = soup.new_tag("li")
            item.append(label)
            item.append(panel.extract())
            instance.append(item)
        flattened += 1

    LOG.debug("Flattened %d tab group(s)", flattened)
    return flattened


def strip_file_tree_labels(instances: Iterable[Tag]) -> int:
    removed = sum(remove_matching(tree, SR_ONLY.match) for tree in instances)
    LOG.debug("Removed %d file tree label(s)", removed)
    return removed


def code_language_from_class(pre: Tag) -> Optional[str]:
    code = pre.find("code")
    if code is None:
        return None
    for token in _class_tokens(code):
        if token.startswith("language-"):
            return token[len("language-") :]
    return None



def _preformatted_text(node: Tag) -> str:
    """Text of a <pre> subtree, one line per Expressive Code <div> line."""
    parts: List[str] = []
    for child in node.children:
        if isinstance(child, Tag):
            if child.name == "br":
                parts.append("\n")
                continue
            text = _preformatted_text(child)
            if child.name == "div" and not text.endswith("\n"):
                text += "\n"
            parts.append(text)
        elif _is_text(child):
            parts.append(str(child))
    return "".join(parts)


class GfmMarkdownConverter(MarkdownConverter):
    """markdownify converter emitting GitHub-flavored Markdown.

    Fenced code blocks take their info string from a ``language-*`` class on
    ``<code>``; checkboxes inside list items become task-list markers.
    """

    def __init__(self, **options: Any) -> None:
        options.setdefault("heading_style", "ATX")
        options.setdefault("bullets", "-")
        options.setdefault("escape_underscores", False)
        options.setdefault("table_infer_header", True)
        options.setdefault("code_language_callback", code_language_from_class)
        super().__init__(**options)

    def convert_pre(self, el, text, parent_tags):
        # Read the code straight from the tree; markdownify trims whitespace
        # at the edges of the per-line <div> wrappers.
        return super().convert_pre(el, _preformatted_text(el).rstrip("\n"), parent_tags)

    def convert_input(self, el, text, parent_tags):
        if el.get("type") != "checkbox" or "li" not in parent_tags:
            return text
        marker = "[x]" if el.has_attr("checked") else "[ ]"
        following = el.next_sibling
        if isinstance(following, NavigableString) and following[:1].isspace():
            return marker
        return marker + " "


def serialize_markdown(soup: BeautifulSoup) -> str:
    return GfmMarkdownConverter().convert_soup(soup).strip()


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text)


def html_to_simple_markdown(
    html: str,
    options: Optional[MinifyOptions] = None,
    minify: bool = False,
) -> str:
    """Convert one rendered page fragment to simplified Markdown."""
    options = options or DEFAULT_MINIFY_OPTIONS
    context = ProcessingContext.create(options, minify)

    soup = parse_fragment(html)
    apply_minify_filter(soup, context)

    widgets = collect_widgets(soup)
    improve_code_blocks(widgets[WidgetKind.CODE_SAMPLE])
    flatten_tabs(soup, widgets[WidgetKind.TABS])
    strip_file_tree_labels(widgets[WidgetKind.FILE_TREE])

    markdown = serialize_markdown(soup)
    if minify and options.whitespace:
        markdown = collapse_whitespace(markdown)
    return markdown


def entry_to_simple_markdown(
    entry: DocEntry,
    render: Callable[[DocEntry], str],
    should_minify: bool = False,
    config: Optional[LlmsTxtConfig] = None,
) -> str:
    """Return ``entry`` as Markdown, rendering it to HTML first unless its raw source is kept.

    MDX entries, and every entry when ``raw_mdx`` is set, are returned as
    their raw body without calling ``render``.
    """
    config = config or DEFAULT_CONFIG
    if entry.id.endswith(".mdx") or config.raw_mdx:
        return entry.body or ""

    html = render(entry)
    return html_to_simple_markdown(html, config.minify, should_minify)
