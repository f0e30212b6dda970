"""
Page-image URLs embedded as JS array literals inside ``<script>`` tags.

Readers often ship their page list as ``var pages = ["https://...", ...];``.
The regex parser below is best effort; anything implementing
:class:`ScriptArrayParser` can replace it without touching the resolver.
"""
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, List, Optional

from crawler.extractor import select_nodes, text_content
from crawler.spider_config import ArrayVarSpec

logger = logging.getLogger(__name__)


class ScriptArrayParser(ABC):
    """Extract the string members of an array assigned to a JS variable."""

    @abstractmethod
    def parse(self, script: str, variable_name: str, match_pattern: Optional[str] = None) -> List[str]:
        """
        Args:
            script: Text of one script tag
            variable_name: Variable the array is assigned to
            match_pattern: Optional site-specific regex override

        Returns:
            URLs in source order (only ``http`` ones)
        """
        pass


class RegexArrayParser(ScriptArrayParser):
    """Match ``name = [ ... ];`` and split the bracket contents on commas."""

    DEFAULT_PATTERN = r"{name}\s*=\s*\[(.*?)\];"

    def parse(self, script: str, variable_name: str, match_pattern: Optional[str] = None) -> List[str]:
        pattern = (match_pattern or self.DEFAULT_PATTERN).replace(
            "{name}", re.escape(variable_name)
        )
        try:
            match = re.search(pattern, script, re.DOTALL)
        except re.error as e:
            logger.warning(f"Invalid array match pattern {pattern!r}: {e}")
            return []

        if not match or not match.groups() or not match.group(1):
            return []

        urls = []
        for raw in match.group(1).split(","):
            value = raw.strip().strip("'\"").replace("\\/", "/")
            if value.startswith("http"):
                urls.append(value)
        return urls


def matching_scripts(document: Any, script_match: str) -> List[str]:
    """Texts of script tags containing every whitespace-separated token."""
    tokens = script_match.split()
    scripts = []
    for node in select_nodes(document, "script"):
        content = text_content(node) or ""
        if all(token in content for token in tokens):
            scripts.append(content)
    return scripts


def extract_array_urls(document: Any, array_var: ArrayVarSpec, parser: ScriptArrayParser) -> List[str]:
    """All array URLs for the configured variable names, in document order."""
    urls: List[str] = []
    for script in matching_scripts(document, array_var.script_match):
        for name in array_var.variable_names:
            urls.extend(parser.parse(script, name, array_var.match_pattern))
    logger.debug(f"Script arrays {array_var.variable_names} yielded {len(urls)} urls")
    return urls
