#!/usr/bin/env python3
"""
cronedit.py

Interactive editor engine for five-field cron expressions: per-field syntax
checks, expression assembly, change-gated description/next-run updates and
focus navigation between the fields.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum, IntEnum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

try:
    import yaml
except ImportError:  # pragma: no cover - dependency check at runtime
    yaml = None

try:
    from croniter import croniter
except ImportError:  # pragma: no cover - dependency check at runtime
    croniter = None

try:
    from cron_descriptor import CasingTypeEnum, DescriptionTypeEnum, ExpressionDescriptor, Options
except ImportError:  # pragma: no cover - dependency check at runtime
    ExpressionDescriptor = None


DEFAULT_CONFIG = Path.home() / ".config" / "cronedit" / "config.yaml"
DEFAULT_EXPRESSION = "20 4 * * *"
DEFAULT_LOCALE = "en_US"
DEFAULT_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_CHAR_LIMIT = 10
DEFAULT_COPY_MESSAGE_MS = 1000
DEFAULT_PREVIEW_COUNT = 5

FIELD_COUNT = 5
WILDCARD = "*"
MIN_ABBREV_LENGTH = 3
STEP_PREFIX = "*/"

NUMERIC_CHARS = frozenset("0123456789*,-/")
LETTER_CHARS = frozenset("ABCDEFGHIJKLMNOPQRSTUVWXYZ")
MONTH_ABBREVIATIONS = (
    "JAN", "FEB", "MAR", "APR", "MAY", "JUN",
    "JUL", "AUG", "SEP", "OCT", "NOV", "DEC",
)
WEEKDAY_ABBREVIATIONS = ("SUN", "MON", "TUE", "WED", "THU", "FRI", "SAT")

COPY_OK_TEXT = "Copied!"
COPY_FAILED_TEXT = "Failed to copy"
COPY_UNAVAILABLE_TEXT = "Clipboard not available"

# Results of EditorModel.handle_key.
KEY_QUIT = "quit"
KEY_HANDLED = "handled"
KEY_COPIED = "copied"
KEY_FORWARD = "forward"

NEXT_FIELD_KEYS = {"tab", "space", "enter"}
QUIT_KEYS = {"c-c", "escape"}

CONFIG_KEYS = {
    "initial_expression",
    "locale",
    "use_24hour_time_format",
    "timezone",
    "time_format",
    "char_limit",
    "copy_message_ms",
    "log_file",
}


class CronEditError(Exception):
    """Base error for cronedit."""


class ConfigError(CronEditError):
    """Settings file or argument validation error."""


class DescriptionError(CronEditError):
    """The description generator rejected an expression."""


class ScheduleParseError(CronEditError):
    """The schedule parser rejected an expression."""


class ClipboardError(CronEditError):
    """Copying to the system clipboard failed."""


logger = logging.getLogger("cronedit")


def setup_logging(
    log_file: Optional[Path] = None,
    level: int = logging.INFO,
    console: bool = False,
) -> logging.Logger:
    if logger.handlers:
        return logger
    logger.setLevel(level)
    formatter = logging.Formatter("%(asctime)s %(levelname)s %(message)s")
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    if console:
        # The full-screen editor owns stdout, so console logging is opt-in.
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(formatter)
        logger.addHandler(stream_handler)
    if not logger.handlers:
        logger.addHandler(logging.NullHandler())
    return logger


def ensure_console_logging() -> None:
    if any(type(handler) is logging.StreamHandler for handler in logger.handlers):
        return
    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
    logger.addHandler(stream_handler)


def require_yaml_dependency() -> None:
    if yaml is None:
        raise CronEditError("Missing required dependency: PyYAML. Install with: pip install PyYAML")


def require_croniter_dependency() -> None:
    if croniter is None:
        raise CronEditError("Missing required dependency: croniter. Install with: pip install croniter")


def require_cron_descriptor_dependency() -> None:
    if ExpressionDescriptor is None:
        raise CronEditError(
            "Missing required dependency: cron-descriptor. Install with: pip install cron-descriptor"
        )


# ---------------------------------------------------------------------------
# Fields and token validation
# ---------------------------------------------------------------------------


class Field(IntEnum):
    MINUTE = 0
    HOUR = 1
    DAY = 2
    MONTH = 3
    WEEKDAY = 4

    @property
    def label(self) -> str:
        return self.name.lower()

    @property
    def allowed_values(self) -> str:
        return ALLOWED_VALUES[self]


ALLOWED_VALUES: Dict[Field, str] = {
    Field.MINUTE: "0-59",
    Field.HOUR: "0-23",
    Field.DAY: "1-31",
    Field.MONTH: "1-12 or JAN-DEC",
    Field.WEEKDAY: "0-6 or SUN-SAT (7 is also Sunday)",
}

FIELD_ABBREVIATIONS: Dict[Field, Tuple[str, ...]] = {
    Field.MONTH: MONTH_ABBREVIATIONS,
    Field.WEEKDAY: WEEKDAY_ABBREVIATIONS,
}


def allowed_chars(cron_field: Field) -> frozenset:
    if cron_field in FIELD_ABBREVIATIONS:
        return NUMERIC_CHARS | LETTER_CHARS
    return NUMERIC_CHARS


def leading_letters(value: str) -> str:
    """Return the uppercased run of A-Z letters at the start of ``value``."""
    run: List[str] = []
    for char in value.upper():
        if char not in LETTER_CHARS:
            break
        run.append(char)
    return "".join(run)


def _valid_letter_value(value: str, cron_field: Field) -> bool:
    abbreviations = FIELD_ABBREVIATIONS.get(cron_field)
    if abbreviations is None:
        return False
    letter_run = leading_letters(value)
    if len(letter_run) < MIN_ABBREV_LENGTH:
        return False
    return any(abbreviation in letter_run for abbreviation in abbreviations)


def _valid_step_value(value: str) -> bool:
    if not value.startswith(WILDCARD) or len(value) == 1:
        return True
    if not value.startswith(STEP_PREFIX):
        return False
    step = value[len(STEP_PREFIX):]
    return bool(step) and all(char in "0123456789" for char in step)


def is_valid_field_value(value: str, cron_field: Union[Field, int]) -> bool:
    """
    Syntactic pre-filter for a single field value.

    Ranges and bounds are not checked here; ``"32"`` passes for the day field
    and is rejected later by the schedule parser.
    """
    cron_field = Field(cron_field)
    if value == "" or value == WILDCARD:
        return True
    # str.upper() maps some non-ASCII letters onto A-Z ("ſ" -> "S").
    if not value.isascii():
        return False

    upper = value.upper()
    valid = allowed_chars(cron_field)
    if any(char not in valid for char in upper):
        return False

    if any(char in LETTER_CHARS for char in upper):
        return _valid_letter_value(upper, cron_field)

    return _valid_step_value(upper)


def build_expression(values: Sequence[str]) -> str:
    if len(values) != FIELD_COUNT:
        raise ValueError(f"expected {FIELD_COUNT} field values, got {len(values)}")
    return " ".join(value if value else WILDCARD for value in values)


def split_expression(expression: str, field_path: str = "expression") -> List[str]:
    parts = expression.split()
    if len(parts) > FIELD_COUNT:
        raise ConfigError(
            f'Error: {field_path} must have at most {FIELD_COUNT} fields, got {len(parts)}: "{expression}".'
        )
    return parts + [""] * (FIELD_COUNT - len(parts))


def check_char_limit(values: Sequence[str], char_limit: int, field_path: str) -> None:
    for idx, value in enumerate(values):
        if len(value) > char_limit:
            raise ConfigError(
                f'Error: {field_path} field {Field(idx).label} "{value}" exceeds char_limit {char_limit}.'
            )


# ---------------------------------------------------------------------------
# Editor errors
# ---------------------------------------------------------------------------


class ErrorKind(Enum):
    INVALID_FIELD = "invalid_field"
    DESCRIPTION = "description"
    SCHEDULE_PARSE = "schedule_parse"
    DESCRIPTOR_INIT = "descriptor_init"


@dataclass(frozen=True)
class EditorError:
    kind: ErrorKind
    field: Optional[Field] = None
    detail: str = ""

    def message(self) -> str:
        if self.kind is ErrorKind.INVALID_FIELD and self.field is not None:
            return f"invalid value in field: {self.field.label}"
        if self.kind is ErrorKind.SCHEDULE_PARSE:
            return f"failed to parse cron expression: {self.detail}"
        if self.kind is ErrorKind.DESCRIPTOR_INIT:
            return f"failed to create cron descriptor: {self.detail}"
        return self.detail


def first_invalid_field(values: Sequence[str]) -> Optional[EditorError]:
    for cron_field in Field:
        if not is_valid_field_value(values[cron_field], cron_field):
            return EditorError(kind=ErrorKind.INVALID_FIELD, field=cron_field)
    return None


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


def system_timezone() -> Tuple[ZoneInfo, str]:
    local_tz = datetime.now().astimezone().tzinfo
    if isinstance(local_tz, ZoneInfo):
        return local_tz, local_tz.key
    tz_name = os.environ.get("TZ")
    if tz_name:
        try:
            zone = ZoneInfo(tz_name)
            return zone, tz_name
        except (ZoneInfoNotFoundError, ValueError):
            pass
    return ZoneInfo("UTC"), "UTC"


def parse_timezone(name: Any, field_path: str) -> ZoneInfo:
    if not isinstance(name, str) or not name.strip():
        raise ConfigError(f"Error: {field_path} must be a timezone string.")
    try:
        return ZoneInfo(name.strip())
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigError(f'Error: Invalid timezone "{name}" at {field_path}.') from exc


def ensure_bool(value: Any, field_path: str, default: bool) -> bool:
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ConfigError(f"Error: {field_path} must be true or false.")
    return value


def ensure_int(value: Any, field_path: str, default: int, minimum: int = 1) -> int:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"Error: {field_path} must be an integer.")
    if value < minimum:
        raise ConfigError(f"Error: {field_path} must be >= {minimum}.")
    return value


def ensure_str(value: Any, field_path: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"Error: {field_path} must be a non-empty string.")
    return value.strip()


def parse_time_format(value: Any, field_path: str) -> str:
    if value is None:
        return DEFAULT_TIME_FORMAT
    fmt = ensure_str(value, field_path)
    if "%" not in fmt:
        raise ConfigError(f'Error: {field_path} must be a strftime pattern, got "{fmt}".')
    return fmt


@dataclass(frozen=True)
class EditorSettings:
    initial_values: List[str]
    locale: str
    use_24hour_time_format: bool
    timezone: ZoneInfo
    timezone_name: str
    time_format: str
    char_limit: int
    copy_message_ms: int
    log_file: Optional[Path]

    @staticmethod
    def default() -> "EditorSettings":
        tz, tz_name = system_timezone()
        return EditorSettings(
            initial_values=split_expression(DEFAULT_EXPRESSION),
            locale=DEFAULT_LOCALE,
            use_24hour_time_format=True,
            timezone=tz,
            timezone_name=tz_name,
            time_format=DEFAULT_TIME_FORMAT,
            char_limit=DEFAULT_CHAR_LIMIT,
            copy_message_ms=DEFAULT_COPY_MESSAGE_MS,
            log_file=None,
        )


def _load_config_payload(config_path: Path) -> Dict[str, Any]:
    require_yaml_dependency()
    if not config_path.exists():
        raise ConfigError(f"Error: Config file not found: {config_path}")

    try:
        payload = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Error: Failed to parse YAML in {config_path}: {exc}") from exc

    if not isinstance(payload, dict):
        raise ConfigError("Error: Top-level config must be a mapping.")
    return payload


def parse_settings(payload: Dict[str, Any], config_dir: Optional[Path] = None) -> EditorSettings:
    unknown = set(payload.keys()) - CONFIG_KEYS
    if unknown:
        raise ConfigError(f"Error: Unknown top-level keys: {sorted(unknown)}.")

    defaults = EditorSettings.default()

    raw_expression = payload.get("initial_expression")
    if raw_expression is None:
        initial_values = defaults.initial_values
    elif isinstance(raw_expression, str):
        initial_values = split_expression(raw_expression, "initial_expression")
    else:
        raise ConfigError("Error: initial_expression must be a string.")
    char_limit = ensure_int(payload.get("char_limit"), "char_limit", DEFAULT_CHAR_LIMIT)
    check_char_limit(initial_values, char_limit, "initial_expression")

    raw_locale = payload.get("locale")
    locale = defaults.locale if raw_locale is None else ensure_str(raw_locale, "locale")

    raw_timezone = payload.get("timezone")
    if raw_timezone is None:
        tz, tz_name = defaults.timezone, defaults.timezone_name
    else:
        tz = parse_timezone(raw_timezone, "timezone")
        tz_name = raw_timezone.strip()

    log_file: Optional[Path] = None
    raw_log_file = payload.get("log_file")
    if raw_log_file is not None:
        log_path = Path(ensure_str(raw_log_file, "log_file")).expanduser()
        if not log_path.is_absolute() and config_dir is not None:
            log_path = config_dir / log_path
        log_file = log_path

    return EditorSettings(
        initial_values=initial_values,
        locale=locale,
        use_24hour_time_format=ensure_bool(
            payload.get("use_24hour_time_format"), "use_24hour_time_format", True
        ),
        timezone=tz,
        timezone_name=tz_name,
        time_format=parse_time_format(payload.get("time_format"), "time_format"),
        char_limit=char_limit,
        copy_message_ms=ensure_int(payload.get("copy_message_ms"), "copy_message_ms", DEFAULT_COPY_MESSAGE_MS),
        log_file=log_file,
    )


def load_settings(config_path: Optional[Path] = None) -> EditorSettings:
    """
    Load settings from ``config_path``.

    Without an explicit path the default location is used only when it
    exists; an explicit path that does not exist is an error.
    """
    if config_path is None:
        if not DEFAULT_CONFIG.exists():
            return EditorSettings.default()
        config_path = DEFAULT_CONFIG
    payload = _load_config_payload(config_path)
    return parse_settings(payload, config_dir=config_path.parent)


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


class CronDescriber:
    """Natural-language descriptions backed by cron-descriptor."""

    PROBE_EXPRESSION = "* * * * *"

    def __init__(self, locale: str = DEFAULT_LOCALE, use_24hour_time_format: bool = True):
        require_cron_descriptor_dependency()
        self.locale = locale
        self.options = Options()
        self.options.throw_exception_on_parse_error = True
        self.options.casing_type = CasingTypeEnum.Sentence
        self.options.use_24hour_time_format = use_24hour_time_format
        self.options.locale_code = locale
        # Fail at startup, not on the first keystroke, when the locale is unusable.
        self.describe(self.PROBE_EXPRESSION)

    def describe(self, expression: str) -> str:
        try:
            descriptor = ExpressionDescriptor(expression, self.options)
            return descriptor.get_description(DescriptionTypeEnum.FULL)
        except Exception as exc:
            raise DescriptionError(str(exc) or exc.__class__.__name__) from exc


class CronScheduleParser:
    """Next-occurrence lookups backed by croniter."""

    def __init__(self, tz: Optional[ZoneInfo] = None):
        require_croniter_dependency()
        self.timezone = tz or system_timezone()[0]

    def _iterator(self, expression: str, after: datetime) -> Any:
        if after.tzinfo is None:
            after = after.replace(tzinfo=self.timezone)
        local_after = after.astimezone(self.timezone)
        try:
            return croniter(expression, local_after)
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ScheduleParseError(str(exc) or exc.__class__.__name__) from exc

    def _localize(self, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=self.timezone)
        return value.astimezone(self.timezone)

    def next_after(self, expression: str, after: datetime) -> datetime:
        iterator = self._iterator(expression, after)
        try:
            return self._localize(iterator.get_next(datetime))
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ScheduleParseError(str(exc) or exc.__class__.__name__) from exc

    def next_times(self, expression: str, count: int, after: datetime) -> List[datetime]:
        iterator = self._iterator(expression, after)
        runs: List[datetime] = []
        try:
            for _ in range(count):
                runs.append(self._localize(iterator.get_next(datetime)))
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ScheduleParseError(str(exc) or exc.__class__.__name__) from exc
        return runs


# ---------------------------------------------------------------------------
# Change-gated updater
# ---------------------------------------------------------------------------


@dataclass
class UpdateResult:
    description: str = ""
    next_run: str = ""
    error: Optional[EditorError] = None


class ChangeGatedUpdater:
    """
    Turns the five field values into description / next-run / error output.

    Collaborators are only consulted when the assembled expression differs
    from the last one processed and every field passes the token validator.
    """

    def __init__(
        self,
        describer: Optional[CronDescriber],
        parser: CronScheduleParser,
        time_format: str = DEFAULT_TIME_FORMAT,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.describer = describer
        self.parser = parser
        self.time_format = time_format
        self.clock = clock or (lambda: datetime.now(tz=timezone.utc))
        self.last_seen: Optional[str] = None
        self.result = UpdateResult()

    def invalidate(self) -> None:
        self.last_seen = None

    def process(self, values: Sequence[str]) -> UpdateResult:
        expression = build_expression(values)
        if expression == self.last_seen:
            logger.debug("Expression unchanged, skipping update: %s", expression)
            return self.result

        self.last_seen = expression
        result = UpdateResult()
        self.result = result

        if not expression.strip():
            return result

        invalid = first_invalid_field(values)
        if invalid is not None:
            logger.debug("Rejected %r: %s", expression, invalid.message())
            result.error = invalid
            return result

        if self.describer is not None:
            try:
                result.description = self.describer.describe(expression)
            except DescriptionError as exc:
                logger.warning("Description failed for %r: %s", expression, exc)
                result.error = EditorError(kind=ErrorKind.DESCRIPTION, detail=str(exc))

        try:
            next_run = self.parser.next_after(expression, self.clock())
        except ScheduleParseError as exc:
            logger.warning("Schedule parse failed for %r: %s", expression, exc)
            result.next_run = ""
            result.error = EditorError(kind=ErrorKind.SCHEDULE_PARSE, detail=str(exc))
            return result

        result.next_run = next_run.strftime(self.time_format)
        logger.debug("Updated %r: next run %s", expression, result.next_run)
        return result


# ---------------------------------------------------------------------------
# Field inputs and focus navigation
# ---------------------------------------------------------------------------


class FieldInput:
    """Text state of one field: bounded value plus a focus flag."""

    placeholder = WILDCARD

    def __init__(self, cron_field: Field, value: str = "", char_limit: int = DEFAULT_CHAR_LIMIT):
        self.field = cron_field
        self.char_limit = char_limit
        self._value = value[:char_limit]
        self._focused = False
        self.on_change: List[Callable[["FieldInput"], None]] = []

    @property
    def value(self) -> str:
        return self._value

    def set_value(self, value: str) -> None:
        value = value[: self.char_limit]
        if value == self._value:
            return
        self._value = value
        self._notify()

    def apply_key(self, key: str) -> None:
        if key == "backspace":
            self.set_value(self.value[:-1])
        elif len(key) == 1 and key.isprintable() and len(self.value) < self.char_limit:
            self.set_value(self.value + key)

    @property
    def focused(self) -> bool:
        return self._focused

    def focus(self) -> None:
        self._focused = True

    def blur(self) -> None:
        self._focused = False

    def _notify(self) -> None:
        for callback in list(self.on_change):
            callback(self)


class FocusNavigator:
    def __init__(self, inputs: Sequence[FieldInput], index: int = 0):
        if len(inputs) != FIELD_COUNT:
            raise ValueError(f"expected {FIELD_COUNT} inputs, got {len(inputs)}")
        self.inputs = list(inputs)
        self.index = index
        self.show_help = False
        self.clamp()
        for position, field_input in enumerate(self.inputs):
            if position == self.index:
                field_input.focus()
            else:
                field_input.blur()

    @property
    def active(self) -> FieldInput:
        return self.inputs[self.index]

    def clamp(self) -> bool:
        """Reset an out-of-range index to the first field. Returns True if it did."""
        if 0 <= self.index < len(self.inputs):
            return False
        logger.debug("Focus index %s out of range; resetting to 0", self.index)
        for field_input in self.inputs:
            field_input.blur()
        self.index = 0
        self.inputs[0].focus()
        return True

    def _move_to(self, index: int) -> None:
        self.inputs[self.index].blur()
        self.index = index
        self.inputs[self.index].focus()

    def advance(self) -> int:
        self.clamp()
        self._move_to((self.index + 1) % len(self.inputs))
        return self.index

    def retreat(self) -> int:
        self.clamp()
        self._move_to((self.index - 1 + len(self.inputs)) % len(self.inputs))
        return self.index

    def smart_retreat(self) -> bool:
        """Step back one field when the active field is empty. No wraparound."""
        self.clamp()
        if self.index == 0 or self.active.value != "":
            return False
        self._move_to(self.index - 1)
        return True

    def toggle_help(self) -> bool:
        self.show_help = not self.show_help
        return self.show_help


# ---------------------------------------------------------------------------
# Editor model
# ---------------------------------------------------------------------------


def clipboard_available() -> bool:
    if sys.platform.startswith("linux"):
        if not os.environ.get("DISPLAY") and not os.environ.get("WAYLAND_DISPLAY"):
            return False
    try:
        return sys.stdout.isatty()
    except (AttributeError, ValueError):
        return False


@dataclass
class EditorModel:
    settings: EditorSettings
    updater: ChangeGatedUpdater
    inputs: List[FieldInput]
    clipboard: Optional[Callable[[str], None]] = None
    init_error: Optional[EditorError] = None
    copy_message: str = ""
    navigator: FocusNavigator = field(init=False)

    def __post_init__(self) -> None:
        self.navigator = FocusNavigator(self.inputs)
        for position, field_input in enumerate(self.inputs):
            field_input.on_change.append(lambda _input, idx=position: self._field_changed(idx))
        self.refresh()

    @property
    def values(self) -> List[str]:
        return [field_input.value for field_input in self.inputs]

    @property
    def expression(self) -> str:
        return build_expression(self.values)

    @property
    def result(self) -> UpdateResult:
        return self.updater.result

    @property
    def description(self) -> str:
        return self.result.description

    @property
    def next_run(self) -> str:
        return self.result.next_run

    @property
    def error(self) -> Optional[EditorError]:
        return self.result.error or self.init_error

    @property
    def focus_index(self) -> int:
        return self.navigator.index

    @property
    def show_help(self) -> bool:
        return self.navigator.show_help

    def refresh(self) -> UpdateResult:
        self.navigator.clamp()
        return self.updater.process(self.values)

    def _field_changed(self, index: int) -> None:
        # The descriptor failure is shown once, until the first edit.
        self.init_error = None
        self.updater.invalidate()
        self.refresh()

    def handle_key(self, key: str) -> str:
        """
        Run one processing cycle for a key press.

        Returns ``quit``, ``copied`` (a clear-message timer should be started),
        ``handled`` or ``forward`` (the key was passed to the active field).
        """
        self.navigator.clamp()
        outcome = self._dispatch_key(key)
        self.refresh()
        return outcome

    def _dispatch_key(self, key: str) -> str:
        if key in QUIT_KEYS:
            logger.info("Quit requested (%s)", key)
            return KEY_QUIT
        if key == "y":
            self.copy_expression()
            return KEY_COPIED
        if key == "?":
            self.navigator.toggle_help()
            return KEY_HANDLED
        if key in NEXT_FIELD_KEYS:
            self.navigator.advance()
            return KEY_HANDLED
        if key == "s-tab":
            self.navigator.retreat()
            return KEY_HANDLED
        if key == "backspace" and self.navigator.smart_retreat():
            return KEY_HANDLED
        self.navigator.active.apply_key(key)
        return KEY_FORWARD

    def copy_expression(self) -> str:
        expression = self.expression
        if self.clipboard is None or not clipboard_available():
            self.copy_message = COPY_UNAVAILABLE_TEXT
            return self.copy_message
        try:
            self.clipboard(expression)
        except ClipboardError as exc:
            logger.warning("Clipboard copy failed: %s", exc)
            self.copy_message = COPY_FAILED_TEXT
        else:
            logger.info("Copied %r to clipboard", expression)
            self.copy_message = COPY_OK_TEXT
        return self.copy_message

    def clear_copy_message(self) -> None:
        self.copy_message = ""


def create_describer(settings: EditorSettings) -> Tuple[Optional[CronDescriber], Optional[EditorError]]:
    try:
        return CronDescriber(settings.locale, settings.use_24hour_time_format), None
    except CronEditError as exc:
        logger.error("Failed to create cron descriptor: %s", exc)
        return None, EditorError(kind=ErrorKind.DESCRIPTOR_INIT, detail=str(exc))


def create_model(
    settings: EditorSettings,
    input_factory: Optional[Callable[[Field, str, int], FieldInput]] = None,
    clipboard: Optional[Callable[[str], None]] = None,
    describer: Optional[CronDescriber] = None,
    parser: Optional[CronScheduleParser] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> EditorModel:
    init_error: Optional[EditorError] = None
    if describer is None:
        describer, init_error = create_describer(settings)
    factory = input_factory or FieldInput
    inputs = [factory(cron_field, settings.initial_values[cron_field], settings.char_limit) for cron_field in Field]
    updater = ChangeGatedUpdater(
        describer=describer,
        parser=parser or CronScheduleParser(settings.timezone),
        time_format=settings.time_format,
        clock=clock,
    )
    return EditorModel(
        settings=settings,
        updater=updater,
        inputs=inputs,
        clipboard=clipboard,
        init_error=init_error,
    )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _evaluate(settings: EditorSettings, expression: str) -> Tuple[List[str], UpdateResult, Optional[EditorError]]:
    values = split_expression(expression)
    describer, init_error = create_describer(settings)
    updater = ChangeGatedUpdater(
        describer=describer,
        parser=CronScheduleParser(settings.timezone),
        time_format=settings.time_format,
    )
    return values, updater.process(values), init_error


def command_check(settings: EditorSettings, expression: str) -> int:
    values, result, init_error = _evaluate(settings, expression)
    print(f"Expression: {build_expression(values)}")
    if init_error is not None:
        print(f"Warning: {init_error.message()}")
    if result.description:
        print(f"Description: {result.description}")
    if result.next_run:
        print(f"Next run: {result.next_run} ({settings.timezone_name})")
    if result.error is not None:
        print(f"Error: {result.error.message()}")
        return 1
    return 0


def command_preview(settings: EditorSettings, expression: str, count: int) -> int:
    values, result, _ = _evaluate(settings, expression)
    canonical = build_expression(values)
    if result.error is not None:
        print(f"Error: {result.error.message()}")
        return 1
    print("=" * 80)
    print(f"Expression: {canonical}")
    if result.description:
        print(result.description)
    print(f"Timezone: {settings.timezone_name}")
    print(f"Next {count} run(s):")
    parser = CronScheduleParser(settings.timezone)
    for run_dt in parser.next_times(canonical, count, datetime.now(tz=timezone.utc)):
        print(f"- {run_dt.strftime(settings.time_format)}")
    print("=" * 80)
    return 0


def command_edit(settings: EditorSettings, expression: Optional[str]) -> int:
    if expression is not None:
        initial_values = split_expression(expression)
        check_char_limit(initial_values, settings.char_limit, "expression")
        settings = replace(settings, initial_values=initial_values)

    if not sys.stdout.isatty():
        logger.info("No TTY available; not starting the editor.")
        return 0

    import cronedit_tui

    cronedit_tui.run_editor(settings)
    return 0


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="cronedit: interactive editor for cron schedule expressions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", help=f"Path to settings YAML (default: {DEFAULT_CONFIG})")
    parser.add_argument("--log-file", help="Write logs to this file")
    parser.add_argument("--timezone", help="Timezone for next-run times (default: system)")
    parser.add_argument("--locale", help=f"Description locale (default: {DEFAULT_LOCALE})")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command")

    edit_parser = subparsers.add_parser("edit", help="Open the interactive editor (default)")
    edit_parser.add_argument("expression", nargs="?", help="Starting expression, quoted")

    check_parser = subparsers.add_parser("check", help="Validate and describe an expression")
    check_parser.add_argument("expression", help="Cron expression, quoted")

    preview_parser = subparsers.add_parser("preview", help="Show upcoming run times")
    preview_parser.add_argument("expression", help="Cron expression, quoted")
    preview_parser.add_argument("--count", type=int, default=DEFAULT_PREVIEW_COUNT, help="Next run count")

    return parser.parse_args(argv)


def resolve_settings(args: argparse.Namespace) -> EditorSettings:
    settings = load_settings(Path(args.config).expanduser() if args.config else None)
    overrides: Dict[str, Any] = {}
    if args.log_file:
        overrides["log_file"] = Path(args.log_file).expanduser()
    if args.timezone:
        overrides["timezone"] = parse_timezone(args.timezone, "--timezone")
        overrides["timezone_name"] = args.timezone
    if args.locale:
        overrides["locale"] = ensure_str(args.locale, "--locale")
    if overrides:
        settings = replace(settings, **overrides)
    return settings


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    command = args.command or "edit"

    try:
        settings = resolve_settings(args)
        setup_logging(
            settings.log_file,
            level=logging.DEBUG if args.verbose else logging.INFO,
            console=command != "edit",
        )
        if command == "edit":
            return command_edit(settings, getattr(args, "expression", None))
        if command == "check":
            return command_check(settings, args.expression)
        if command == "preview":
            if args.count <= 0:
                raise CronEditError("--count must be >= 1")
            return command_preview(settings, args.expression, count=args.count)
        raise CronEditError(f"Unsupported command: {command}")
    except CronEditError as exc:
        ensure_console_logging()
        logger.error(str(exc))
        return 1
    except Exception as exc:  # pragma: no cover - defensive
        ensure_console_logging()
        logger.exception("Unexpected error: %s", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
