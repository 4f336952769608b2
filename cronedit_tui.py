"""
Full-screen prompt_toolkit front end for cronedit.

Five single-line buffers hold the cron fields; every other piece of state
(focus, help panel, description, next run, copy message) lives in
``cronedit.EditorModel`` and is rendered from it on each redraw.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Callable, List, Optional

import pyperclip
from prompt_toolkit import Application
from prompt_toolkit.buffer import Buffer
from prompt_toolkit.clipboard import ClipboardData
from prompt_toolkit.clipboard.pyperclip import PyperclipClipboard
from prompt_toolkit.document import Document
from prompt_toolkit.filters import Condition
from prompt_toolkit.formatted_text import StyleAndTextTuples
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.layout import (
    BufferControl,
    ConditionalContainer,
    FormattedTextControl,
    HorizontalAlign,
    HSplit,
    Layout,
    VSplit,
    Window,
    WindowAlign,
)
from prompt_toolkit.layout.dimension import Dimension as D
from prompt_toolkit.layout.processors import Processor, Transformation, TransformationInput
from prompt_toolkit.styles import Style

import cronedit
from cronedit import (
    KEY_COPIED,
    KEY_QUIT,
    ClipboardError,
    CronDescriber,
    CronScheduleParser,
    EditorModel,
    EditorSettings,
    Field,
    FieldInput,
    logger,
)


TITLE = "crontab editor"
SUBTITLE = "The quick and simple editor for cron schedule expressions"
FOOTER = "Press ? for help, y to copy, Esc to quit"
LABEL_WIDTH = 12
INPUT_WIDTH = LABEL_WIDTH - 4  # border + padding on each side

BOUND_KEYS = ("c-c", "escape", "y", "?", "tab", "s-tab", "enter", "space", "backspace")

HELP_LINES = [
    "*    any value",
    ",    value list separator",
    "-    range of values",
    "/    step values",
    "---------------------------",
    "tab/space/enter: next field",
    "shift+tab: previous field",
    "y: copy expression",
    "esc/ctrl+c: quit",
]

STYLE = Style.from_dict({
    "title": "bold #ffff00",
    "subtitle": "#aaaaaa",
    "description": "bold italic #ffffff",
    "error": "bold #ff0000",
    "info": "#00ffff",
    "input-box": "#ffffff",
    "input-box.focused": "#ffff00",
    "input-box.error": "#ff0000",
    "placeholder": "#666666",
    "label": "#aaaaaa",
    "label.focused": "bold #ffff00",
    "hint": "#666666",
    "help": "#888888",
    "copy-message": "#00ff00",
})


class PlaceholderProcessor(Processor):
    """Show a dim placeholder while the buffer is empty."""

    def __init__(self, text: str):
        self.text = text

    def apply_transformation(self, transformation_input: TransformationInput) -> Transformation:
        if transformation_input.document.text == "" and transformation_input.lineno == 0:
            return Transformation([("class:placeholder", self.text)])
        return Transformation(transformation_input.fragments)


class BufferFieldInput(FieldInput):
    """A FieldInput whose text lives in a prompt_toolkit Buffer."""

    def __init__(self, cron_field: Field, value: str = "", char_limit: int = cronedit.DEFAULT_CHAR_LIMIT):
        super().__init__(cron_field, value, char_limit)
        self.on_focus: Optional[Callable[["BufferFieldInput"], None]] = None
        self.buffer = Buffer(
            name=cron_field.label,
            multiline=False,
            document=Document(self._value, len(self._value)),
        )
        self.buffer.on_text_changed += self._buffer_changed
        self.window = Window(
            BufferControl(buffer=self.buffer, input_processors=[PlaceholderProcessor(self.placeholder)]),
            width=D.exact(INPUT_WIDTH),
            height=1,
        )

    @property
    def value(self) -> str:
        return self.buffer.text

    def set_value(self, value: str) -> None:
        value = value[: self.char_limit]
        if value != self.buffer.text:
            self.buffer.document = Document(value, len(value))

    def apply_key(self, key: str) -> None:
        if key == "backspace":
            self.buffer.delete_before_cursor(1)
        elif len(key) == 1 and key.isprintable() and len(self.buffer.text) < self.char_limit:
            self.buffer.insert_text(key)

    def focus(self) -> None:
        super().focus()
        if self.on_focus is not None:
            self.on_focus(self)

    def _buffer_changed(self, _buffer: Buffer) -> None:
        text = self.buffer.text
        if len(text) > self.char_limit:
            # Re-enters this handler with the truncated text.
            self.set_value(text)
            return
        self._value = text
        self._notify()


def clipboard_sink(clipboard: PyperclipClipboard) -> Callable[[str], None]:
    def copy(text: str) -> None:
        try:
            clipboard.set_data(ClipboardData(text))
        except pyperclip.PyperclipException as exc:
            raise ClipboardError(str(exc)) from exc

    return copy


class CronEditorApp:
    def __init__(
        self,
        settings: EditorSettings,
        describer: Optional[CronDescriber] = None,
        parser: Optional[CronScheduleParser] = None,
        clock: Optional[Callable[[], datetime]] = None,
        input: Any = None,
        output: Any = None,
    ):
        self.settings = settings
        self.app: Optional[Application] = None
        self.clipboard = PyperclipClipboard()
        self.model: EditorModel = cronedit.create_model(
            settings,
            input_factory=BufferFieldInput,
            clipboard=clipboard_sink(self.clipboard),
            describer=describer,
            parser=parser,
            clock=clock,
        )
        self.inputs: List[BufferFieldInput] = list(self.model.inputs)
        for field_input in self.inputs:
            field_input.on_focus = self._sync_focus
        self.app = Application(
            layout=Layout(self._create_container(), focused_element=self.inputs[self.model.focus_index].window),
            key_bindings=self._create_bindings(),
            style=STYLE,
            full_screen=True,
            clipboard=self.clipboard,
            input=input,
            output=output,
        )

    def run(self) -> None:
        logger.info("Starting editor with %r", self.model.expression)
        self.app.run()
        logger.info("Editor closed with %r", self.model.expression)

    def _sync_focus(self, field_input: BufferFieldInput) -> None:
        if self.app is not None:
            self.app.layout.focus(field_input.window)

    # Key handling

    def _create_bindings(self) -> KeyBindings:
        kb = KeyBindings()
        for key in BOUND_KEYS:
            kb.add(key, eager=key == "escape")(self._key_handler(key))
        return kb

    def _key_handler(self, key: str) -> Callable[[Any], None]:
        def handler(event: Any) -> None:
            outcome = self.model.handle_key(key)
            if outcome == KEY_QUIT:
                event.app.exit()
            elif outcome == KEY_COPIED:
                self._schedule_clear_copy_message()

        return handler

    def _schedule_clear_copy_message(self) -> None:
        delay = self.settings.copy_message_ms / 1000.0
        asyncio.get_running_loop().call_later(delay, self._clear_copy_message)

    def _clear_copy_message(self) -> None:
        self.model.clear_copy_message()
        if self.app is not None:
            self.app.invalidate()

    # Rendering

    def _centered(self, get_text: Callable[[], StyleAndTextTuples], height: int = 1) -> Window:
        return Window(FormattedTextControl(get_text), height=D.exact(height), align=WindowAlign.CENTER)

    def _input_box_style(self, index: int) -> str:
        if self.model.error is not None:
            return "class:input-box.error"
        if self.inputs[index].focused:
            return "class:input-box.focused"
        return "class:input-box"

    def _boxed(self, index: int) -> HSplit:
        def style() -> str:
            return self._input_box_style(index)

        def edge(left: str, fill: str, right: str) -> VSplit:
            return VSplit([
                Window(width=1, height=1, char=left, style=style),
                Window(height=1, char=fill, style=style),
                Window(width=1, height=1, char=right, style=style),
            ])

        return HSplit(
            [
                edge("╭", "─", "╮"),
                VSplit([
                    Window(width=1, height=1, char="│", style=style),
                    Window(width=1, height=1),
                    self.inputs[index].window,
                    Window(width=1, height=1),
                    Window(width=1, height=1, char="│", style=style),
                ]),
                edge("╰", "─", "╯"),
            ],
            width=D.exact(LABEL_WIDTH),
        )

    def render_description(self) -> StyleAndTextTuples:
        if self.model.description:
            return [("class:description", f'"{self.model.description}"')]
        error = self.model.error
        if error is not None:
            return [("class:error", f"Error: {error.message()}")]
        return []

    def render_next_run(self) -> StyleAndTextTuples:
        if self.model.next_run:
            return [("class:info", f"next at {self.model.next_run}")]
        return []

    def render_labels(self, index: int) -> StyleAndTextTuples:
        style = "class:label.focused" if index == self.model.focus_index else "class:label"
        return [(style, Field(index).label)]

    def render_allowed_values(self) -> StyleAndTextTuples:
        active = Field(self.model.focus_index)
        return [("class:hint", f"Allowed values: {active.allowed_values}")]

    def render_copy_message(self) -> StyleAndTextTuples:
        if self.model.copy_message:
            return [("class:copy-message", self.model.copy_message)]
        return []

    def _create_container(self) -> HSplit:
        labels = [
            Window(
                FormattedTextControl(lambda idx=idx: self.render_labels(idx)),
                width=D.exact(LABEL_WIDTH),
                height=1,
                align=WindowAlign.CENTER,
            )
            for idx in range(len(self.inputs))
        ]
        return HSplit([
            Window(height=1),
            self._centered(lambda: [("class:title", TITLE)]),
            self._centered(lambda: [("class:subtitle", SUBTITLE)]),
            Window(height=1),
            self._centered(self.render_description),
            self._centered(self.render_next_run),
            Window(height=1),
            VSplit([self._boxed(idx) for idx in range(len(self.inputs))], align=HorizontalAlign.CENTER),
            VSplit(labels, align=HorizontalAlign.CENTER),
            self._centered(self.render_allowed_values),
            Window(height=1),
            ConditionalContainer(
                self._centered(lambda: [("class:help", "\n".join(HELP_LINES))], height=len(HELP_LINES)),
                filter=Condition(lambda: self.model.show_help),
            ),
            self._centered(lambda: [("class:hint", FOOTER)]),
            self._centered(self.render_copy_message),
        ])


def run_editor(settings: EditorSettings) -> None:
    CronEditorApp(settings).run()
