"""
Selector Spec interpreter.

``extract`` evaluates one :class:`~crawler.spider_config.SelectorSpec` against
a parsed node (a scrapy/parsel ``Selector``) and returns a scalar, a list, or
``None``. Search results, manga profiles and chapter pages all go through it.
"""
import html
import json
import logging
from functools import lru_cache
from typing import Any, Callable, List, Optional, Sequence

from cssselect import ExpressionError, SelectorError
from jsonpath_ng.exceptions import JSONPathError
from jsonpath_ng.ext import parse as parse_jsonpath
from lxml import html as lxml_html
from scrapy.selector import Selector

from crawler.spider_config import SelectorSpec

logger = logging.getLogger(__name__)

# Returned by a strategy that does not apply to the node
SKIP = object()

RAW_TEXT_TAGS = {"script", "style"}


def parse_html(text: str) -> Selector:
    """Parse raw HTML into a queryable document node."""
    return Selector(text=text or "", type="html")


def select_nodes(context: Any, selector: Optional[str]) -> List[Any]:
    """
    Resolve the candidate node set for ``selector`` under ``context``.

    No selector means the context itself. A context that cannot be queried, or
    a selector the CSS translator rejects, yields no candidates.
    """
    if not selector:
        return [context]
    if not hasattr(context, "css"):
        return []
    try:
        return list(context.css(selector))
    except (SelectorError, ExpressionError, ValueError) as e:
        logger.warning(f"Invalid CSS selector {selector!r}: {e}")
        return []


def text_content(node: Any) -> Optional[str]:
    """Concatenated descendant text of ``node``, or None if it has none."""
    root = getattr(node, "root", node)
    if isinstance(root, str):
        return root
    if hasattr(node, "xpath"):
        return node.xpath("string()").get()
    return None


def is_element(node: Any) -> bool:
    return hasattr(getattr(node, "root", None), "tag")


def inner_markup(node: Any) -> Optional[str]:
    """Serialized children of an element, like the DOM ``innerHTML``."""
    if not is_element(node):
        return None
    root = node.root
    lead = root.text or ""
    if root.tag not in RAW_TEXT_TAGS:
        lead = html.escape(lead, quote=False)
    children = "".join(
        lxml_html.tostring(child, encoding="unicode") for child in root
    )
    return lead + children


@lru_cache(maxsize=256)
def compile_jsonpath(path: str):
    return parse_jsonpath(path)


def json_matches(value: Any, path: str) -> List[Any]:
    """All values ``path`` selects in ``value``; a malformed path selects none."""
    try:
        expression = compile_jsonpath(path)
    except JSONPathError as e:
        logger.warning(f"Invalid JSONPath {path!r}: {e}")
        return []
    return [match.value for match in expression.find(value)]


# ---------------------------------------------------------------------------
# Extraction strategies, tried in order until one applies
# ---------------------------------------------------------------------------

def from_json(node: Any, spec: SelectorSpec) -> Any:
    if not spec.parse_script_json:
        return SKIP
    raw = text_content(node)
    if not raw or not raw.strip():
        return SKIP
    try:
        parsed = json.loads(raw.strip())
    except ValueError:
        return SKIP

    if spec.json_path:
        matches = json_matches(parsed, spec.json_path)
        # A path that selects one array means its members
        if len(matches) == 1 and isinstance(matches[0], list):
            matches = matches[0]
        matches = [m for m in matches if m is not None]
        return matches if matches else SKIP
    return parsed if parsed is not None else SKIP


def from_text(node: Any, spec: SelectorSpec) -> Any:
    if not spec.text:
        return SKIP
    content = text_content(node)
    return content.strip() if content is not None else SKIP


def from_attribute(node: Any, spec: SelectorSpec) -> Any:
    if not spec.attribute or not is_element(node):
        return SKIP
    # An absent attribute resolves the node to nothing, not to ""
    return node.attrib.get(spec.attribute)


def from_markup(node: Any, spec: SelectorSpec) -> Any:
    markup = inner_markup(node)
    if markup is not None:
        return markup.strip()
    return getattr(node, "root", node)


STRATEGIES: Sequence[Callable[[Any, SelectorSpec], Any]] = (
    from_json,
    from_text,
    from_attribute,
    from_markup,
)


def extract_node(node: Any, spec: SelectorSpec) -> Any:
    """Value of a single candidate node, or None."""
    for strategy in STRATEGIES:
        value = strategy(node, spec)
        if value is not SKIP:
            return value
    return None


def arrange(values: List[Any], arranger: Optional[str]) -> List[Any]:
    """Apply an arranger policy to a fully extracted list."""
    if arranger == "newestFirst":
        return list(reversed(values))
    return list(values)


def extract(context: Any, spec: SelectorSpec) -> Any:
    """
    Evaluate ``spec`` against ``context``.

    Args:
        context: Parsed document or element (``Selector``)
        spec: The field's Selector Spec

    Returns:
        A list of values when ``spec.multiple`` (never containing None),
        otherwise the first non-list value or None.
    """
    nodes = select_nodes(context, spec.selector)
    if not spec.multiple:
        nodes = nodes[:1]

    results: List[Any] = []
    for node in nodes:
        value = extract_node(node, spec)
        if isinstance(value, list):
            results.extend(v for v in value if v is not None)
        elif value is not None:
            results.append(value)

    if spec.multiple:
        return arrange(results, spec.arranger)
    return first_scalar(results)


def first_scalar(values: List[Any]) -> Any:
    """First non-list value, descending into nested lists; None if there is none."""
    for value in values:
        if isinstance(value, list):
            value = first_scalar(value)
        if value is not None:
            return value
    return None
