"""Message formatting and locale state.

Messages are either plain strings or descriptors of the form
``{"id": ..., "default": ..., "description": ...}``. Descriptors are looked
up in the translation table of the current locale and fall back to their
default text. Placeholders use ``{name}`` syntax.
"""

import re
from typing import Any, Callable, Mapping, Optional

_PLACEHOLDER = re.compile(r"\{(\w+)\}")

DEFAULT_LOCALE = "en"


def _interpolate(text: str, args: Optional[Mapping[str, Any]]) -> str:
    if not args:
        return text
    return _PLACEHOLDER.sub(
        lambda m: str(args[m.group(1)]) if m.group(1) in args else m.group(0),
        text
    )


class MessageFormatter:
    """Formats message descriptors against per-locale translation tables."""

    def __init__(
        self,
        locale: str = DEFAULT_LOCALE,
        translations: Optional[dict[str, dict[str, str]]] = None,
        generate_id: Optional[Callable[[str], str]] = None
    ):
        self.locale = locale
        self.translations = translations or {}
        self.generate_id = generate_id

    def setup(
        self,
        locale: Optional[str] = None,
        translations: Optional[dict[str, dict[str, str]]] = None,
        generate_id: Optional[Callable[[str], str]] = None
    ) -> None:
        if locale is not None:
            self.locale = locale
        if translations is not None:
            self.translations = translations
        if generate_id is not None:
            self.generate_id = generate_id

    def namespace(self) -> "MessageFormatter":
        """A detached formatter starting from this one's locale."""
        return MessageFormatter(locale=self.locale)

    def _lookup(self, message_id: Optional[str]) -> Optional[str]:
        if not message_id:
            return None
        for locale in (self.locale, self.locale.split("-")[0]):
            table = self.translations.get(locale)
            if table and message_id in table:
                return table[message_id]
        return None

    def format(self, message: Any, args: Optional[Mapping[str, Any]] = None) -> str:
        if isinstance(message, str):
            return _interpolate(message, args)
        if not isinstance(message, Mapping):
            raise TypeError(f"Unsupported message type: {type(message).__name__}")

        default = message.get("default", "")
        message_id = message.get("id")
        if not message_id and self.generate_id and default:
            message_id = self.generate_id(default)

        # Missing translations fall back to the default text silently.
        text = self._lookup(message_id)
        if text is None:
            text = default or message_id or ""
        return _interpolate(text, args)


formatter = MessageFormatter()


def set_locale(locale: str) -> None:
    formatter.setup(locale=locale)


def get_locale() -> str:
    return formatter.locale


def format_message(message: Any, args: Optional[Mapping[str, Any]] = None) -> str:
    return formatter.format(message, args)


def is_message_descriptor(value: Any) -> bool:
    return isinstance(value, Mapping) and ("default" in value or "id" in value)


def maybe_format_message(value: Any, args: Optional[Mapping[str, Any]] = None) -> Any:
    """Format ``value`` if it is a message descriptor, else return it unchanged."""
    if is_message_descriptor(value):
        return formatter.format(value, args)
    return value
