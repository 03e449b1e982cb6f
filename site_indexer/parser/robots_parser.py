# site_indexer/parser/robots_parser.py
"""
Parser and checker for robots.txt rules (RFC 9309) plus ``Sitemap:`` discovery.
"""
from __future__ import annotations

import re
from typing import Any, Dict, List, Optional


class RobotsTxtRules:
    """Parsed robots.txt.

    An empty ``Disallow`` allows everything. ``Sitemap:`` lines are global
    and collected in file order regardless of the group they appear in.
    """

    _WILDCARD_RE = re.compile(r"(\*|\$)")

    def __init__(self, text: str) -> None:
        self.groups: List[Dict[str, Any]] = []
        self.sitemaps: List[str] = []
        self._regex_cache: Dict[str, re.Pattern[str]] = {}
        self._parse(text)

    def can_fetch(self, user_agent: str, path: str) -> bool:
        """Return True if the user_agent can fetch the given path under the rules."""
        group = self._match_group(user_agent)
        if group is None:
            return True
        best_len = -1
        allow: Optional[bool] = None
        for directive, pattern in group["directives"]:
            if not self._match_path(path, pattern):
                continue
            length = self._rule_len(pattern)
            if length > best_len or (length == best_len and directive == "allow" and allow is False):
                best_len = length
                allow = directive == "allow"
        return True if allow is None else allow

    def _parse(self, text: str) -> None:
        """Parse robots.txt content into user-agent groups and directives."""
        current: Optional[Dict[str, Any]] = None
        for raw in text.splitlines():
            line = raw.split("#", 1)[0].strip()
            if not line:
                continue
            key, _, val = line.partition(":")
            key = key.strip().lower()
            val = val.strip()
            if key == "sitemap":
                if val:
                    self.sitemaps.append(val)
            elif key == "user-agent":
                if current is None or current["directives"]:
                    current = {"agents": [], "directives": []}
                    self.groups.append(current)
                current["agents"].append(val.lower())
            elif key in ("allow", "disallow"):
                # empty Disallow allows everything
                if key == "disallow" and not val:
                    continue
                if current is None:
                    current = {"agents": ["*"], "directives": []}
                    self.groups.append(current)
                current["directives"].append((key, val))

    def _match_group(self, user_agent: str) -> Optional[Dict[str, Any]]:
        """Select the most specific group matching the user-agent."""
        ua = user_agent.lower()
        for group in self.groups:
            if any(a != "*" and ua.startswith(a) for a in group["agents"]):
                return group
        for group in self.groups:
            if "*" in group["agents"]:
                return group
        return None

    def _match_path(self, path: str, pattern: str) -> bool:
        if pattern not in self._regex_cache:
            esc = re.escape(pattern).replace(r"\*", ".*")
            if pattern.endswith("$"):
                esc = esc[:-2] + "$"
            else:
                esc += ".*"
            self._regex_cache[pattern] = re.compile(f"^{esc}")
        return bool(self._regex_cache[pattern].match(path))

    @classmethod
    def _rule_len(cls, pattern: str) -> int:
        return len(cls._WILDCARD_RE.sub("", pattern))


def parse_robots(text: str) -> RobotsTxtRules:
    return RobotsTxtRules(text)


__all__ = ["RobotsTxtRules", "parse_robots"]
