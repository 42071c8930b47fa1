import re
from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from loguru import Record

REDACTED = "[REDACTED]"
VISIBLE_PREFIX_LENGTH = 6

SECRET_PATTERNS = {
    "Bearer token": r"[Bb]earer\s+[A-Za-z0-9\-_=]+\.[A-Za-z0-9\-_=]+\.?[A-Za-z0-9\-_.+/=]*",
    "SAS signature": r"(?<=[?&]sig=)[^&\s\"']+",
    "Password in URL": r"[a-zA-Z]{3,10}:\/\/[^\/\s:@]{3,20}:[^\/\s:@]{3,20}@",
    "Storage account key": r"(?<=AccountKey=)[A-Za-z0-9+/=]{20,}",
    "Client secret": r"(?<=client_secret=)[^&\s\"']+",
}


class SensitiveLogFilter:
    """Masks credentials in log messages and in values bound with `logger.bind`.

    Patterns are shared by every instance, so a token registered through
    `hide_sensitive_strings` is hidden by all sinks.
    """

    compiled_patterns: list[re.Pattern[str]] = [
        re.compile(pattern) for pattern in SECRET_PATTERNS.values()
    ]

    def hide_sensitive_strings(self, *tokens: str) -> None:
        for token in (token.strip() for token in tokens):
            if token:
                self.compiled_patterns.append(re.compile(re.escape(token)))

    def mask_string(self, string: str, full_hide: bool = False) -> str:
        def redact(match: re.Match[str]) -> str:
            if full_hide:
                return REDACTED
            return match.group()[:VISIBLE_PREFIX_LENGTH] + REDACTED

        for pattern in self.compiled_patterns:
            string = pattern.sub(redact, string)
        return string

    def mask_object(self, obj: Any, full_hide: bool = False) -> Any:
        """Masked copy of strings nested in lists and dicts; `obj` is not mutated."""
        if isinstance(obj, str):
            return self.mask_string(obj, full_hide)
        if isinstance(obj, dict):
            return {key: self.mask_object(value, full_hide) for key, value in obj.items()}
        if isinstance(obj, (list, tuple)):
            return type(obj)(self.mask_object(item, full_hide) for item in obj)
        return obj

    def create_filter(self, full_hide: bool = False) -> Callable[["Record"], bool]:
        def _filter(record: "Record") -> bool:
            record["message"] = self.mask_string(record["message"], full_hide)
            if record["extra"]:
                record["extra"].update(self.mask_object(dict(record["extra"]), full_hide))
            return True

        return _filter


sensitive_log_filter = SensitiveLogFilter()
