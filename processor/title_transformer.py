"""Title replacement and shortening for displayed events."""
import logging
import re
from typing import Any, Dict, List, Sequence

from processor.models import LiteralRule, RegexRule, TitleRule

logger = logging.getLogger(__name__)

ELLIPSIS = '…'
LINE_BREAK = '\n'
DEFAULT_WRAP_LENGTH = 25

REGEX_NEEDLE = re.compile(r'^/(.+)/([gim]*)$')
JS_GROUP_REFERENCE = re.compile(r'\$(\$|&|\d{1,2})')


def parse_title_replace(mapping: Dict[str, Any]) -> List[TitleRule]:
    """
    Parse configured ``titleReplace`` needles into rules.

    A needle written as ``/body/flags`` becomes a RegexRule, anything else
    a LiteralRule. Mapping order is rule order.

    Args:
        mapping: Ordered needle -> replacement mapping

    Returns:
        List of TitleRule values

    Raises:
        re.error: If a regex needle does not compile
    """
    rules = []
    for needle, replacement in mapping.items():
        replacement = '' if replacement is None else str(replacement)
        reg_parts = REGEX_NEEDLE.match(needle)
        if reg_parts:
            pattern, flags = reg_parts.group(1), reg_parts.group(2)
            re.compile(pattern, _regex_flags(flags))
            rules.append(RegexRule(pattern=pattern, flags=flags, replacement=replacement))
        else:
            rules.append(LiteralRule(text=needle, replacement=replacement))
    logger.debug(f"Parsed {len(rules)} title replacement rules")
    return rules


def _regex_flags(flags: str) -> int:
    value = 0
    if 'i' in flags:
        value |= re.IGNORECASE
    if 'm' in flags:
        value |= re.MULTILINE
    return value


def _python_replacement(replacement: str, groups: int) -> str:
    """
    Translate ``$1``/``$&``/``$$`` references to re.sub syntax.

    A ``$N`` naming a group the pattern does not have stays literal text.
    """
    escaped = replacement.replace('\\', '\\\\')

    def convert(match):
        token = match.group(1)
        if token == '$':
            return '$'
        if token == '&':
            return r'\g<0>'
        if 0 < int(token) <= groups:
            return rf'\g<{int(token)}>'
        if len(token) == 2 and 0 < int(token[0]) <= groups:
            return rf'\g<{token[0]}>' + token[1]
        return match.group(0)

    return JS_GROUP_REFERENCE.sub(convert, escaped)


class TitleTransformer:
    """Applies title rules, then truncates or wraps the result."""

    def transform(
        self,
        title: Any,
        replacements: Sequence[TitleRule] = (),
        max_length: Any = 100,
        wrap: bool = False,
        max_lines: int = 3
    ) -> str:
        """
        Transform an event title for display.

        Args:
            title: Raw event title; anything but a string yields ''
            replacements: Parsed rules, applied in order
            max_length: Character budget per title (or per line when wrapping)
            wrap: Wrap onto multiple lines instead of truncating
            max_lines: Maximum number of lines when wrapping

        Returns:
            Display title
        """
        if not isinstance(title, str):
            return ''

        for rule in replacements:
            title = self.apply_rule(title, rule)

        return self.shorten(title, max_length, wrap, max_lines)

    def apply_rule(self, title: str, rule: TitleRule) -> str:
        if isinstance(rule, RegexRule):
            count = 0 if 'g' in rule.flags else 1
            pattern = re.compile(rule.pattern, _regex_flags(rule.flags))
            return pattern.sub(
                _python_replacement(rule.replacement, pattern.groups),
                title,
                count=count
            )
        return title.replace(rule.text, rule.replacement, 1)

    def shorten(self, text: Any, max_length: Any, wrap: bool, max_lines: int) -> str:
        """
        Shorten ``text`` to ``max_length`` characters plus an ellipsis.

        When ``wrap`` is set, words are packed onto lines shorter than
        ``max_length - 1`` characters and at most ``max_lines`` lines are
        kept.
        """
        if not isinstance(text, str):
            return ''

        has_length = isinstance(max_length, int) and not isinstance(max_length, bool)

        if wrap is True:
            limit = (max_length if has_length else DEFAULT_WRAP_LENGTH) - 1
            wrapped = ''
            current_line = ''
            line = 0
            words = text.split(' ')

            for word in words:
                if len(current_line) + len(word) < limit:
                    current_line += word + ' '
                    continue

                line += 1
                if line > max_lines - 1:
                    current_line += ELLIPSIS
                    break

                if current_line:
                    wrapped += current_line + LINE_BREAK + word + ' '
                else:
                    wrapped += word + LINE_BREAK
                current_line = ''

            return (wrapped + current_line).strip()

        if has_length and max_length and len(text) > max_length:
            return text.strip()[:max_length] + ELLIPSIS
        return text.strip()
