"""Pygame UI shell for Math Coach.

Screens:
- Profile picker (coach + students)
- Coach dashboard (roster, per-student tasks and reports, create task)
- Student dashboard (active tasks, create own task, reports)
- Task creation (fact grid, count, time limit, layout, thresholds, preview)
- Attempt (train/test mode choice, timed answering, results)
- Reports (per-task score trend)

Deterministic timing/grading/RNG/state lives in math_coach/* (core modules);
this module only renders and maps input onto them.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

import pygame

from . import log
from .attempt_session import AttemptSession, AttemptState, Finished, Mode, ModeSelection, Running, Submitting
from .attempts import store_submitter
from .clock import Clock, ClockTicker, RealClock
from .config import LAYOUTS, AppConfig, load_config
from .errors import MathCoachError
from .facts import FactGrid
from .persistence import ProfileRecord, Store, TaskRecord
from .question_engine import (
    Grade,
    GradeThresholds,
    Question,
    SeededRng,
    generate_questions,
    new_seed,
    reshuffle_questions,
)
from .reports import student_report
from .seed import seed_demo_profiles
from .tasks import NewTask, coach_roster, create_task, deactivate_task, list_student_tasks, load_task_for_attempt


class Screen(Protocol):
    def handle_event(self, event: pygame.event.Event) -> None: ...
    def render(self, surface: pygame.Surface) -> None: ...


@dataclass(frozen=True, slots=True)
class MenuItem:
    label: str
    action: Callable[[], None]
    # Bound to D / Delete on the highlighted row.
    secondary: Callable[[], None] | None = None


WINDOW_SIZE = (960, 540)
TARGET_FPS = 60

BG = (3, 9, 78)
PANEL_BG = (8, 18, 104)
HEADER_BG = (18, 30, 118)
BORDER = (226, 236, 255)
TEXT_MAIN = (238, 245, 255)
TEXT_MUTED = (186, 200, 224)
ACTIVE_BG = (244, 248, 255)
ACTIVE_TEXT = (14, 26, 74)
OK_GREEN = (120, 220, 140)
BAD_RED = (240, 110, 110)
WARN_AMBER = (245, 190, 80)

GRADE_LABELS = {
    Grade.MASTER: "Master",
    Grade.GOOD: "Good",
    Grade.PASS: "Pass",
    Grade.FAIL: "Not Yet",
}
GRADE_COLORS = {
    Grade.MASTER: (250, 214, 90),
    Grade.GOOD: (110, 190, 250),
    Grade.PASS: OK_GREEN,
    Grade.FAIL: BAD_RED,
}


class App:
    def __init__(self, surface: pygame.Surface, font: pygame.font.Font, store: Store, config: AppConfig) -> None:
        self._surface = surface
        self._font = font
        self._store = store
        self._config = config
        self._screens: list[Screen] = []
        self._running = True
        self._status = ""

    @property
    def running(self) -> bool:
        return self._running

    @property
    def font(self) -> pygame.font.Font:
        return self._font

    @property
    def store(self) -> Store:
        return self._store

    @property
    def config(self) -> AppConfig:
        return self._config

    @property
    def status(self) -> str:
        return self._status

    def notify(self, message: str) -> None:
        self._status = message

    def push(self, screen: Screen) -> None:
        self._status = ""
        self._screens.append(screen)

    def pop(self) -> None:
        # Never pop the last/root screen; root handles its own quit/back behavior.
        if len(self._screens) > 1:
            leaving = self._screens.pop()
            close = getattr(leaving, "close", None)
            if close is not None:
                close()
            resume = getattr(self._screens[-1], "on_resume", None)
            if resume is not None:
                resume()

    def quit(self) -> None:
        self._running = False

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.QUIT:
            self.quit()
            return
        if not self._screens:
            return
        self._screens[-1].handle_event(event)

    def render(self) -> None:
        if not self._screens:
            return
        self._screens[-1].render(self._surface)

    def shutdown(self) -> None:
        while self._screens:
            close = getattr(self._screens.pop(), "close", None)
            if close is not None:
                close()


def _fmt_clock(seconds: int) -> str:
    m, s = divmod(max(0, int(seconds)), 60)
    return f"{m}:{s:02d}"


def _fmt_minutes(seconds: int) -> str:
    m, s = divmod(int(seconds), 60)
    return f"{m} min" if s == 0 else f"{m}m {s}s"


def append_digit(current: str, ch: str, max_digits: int) -> str | None:
    """Typed answer after keying ``ch``, or None if the key is not accepted.

    Only ASCII digits count; anything else (superscripts, letters) is dropped
    so the stored text always parses as an integer.
    """

    if len(ch) != 1 or ch not in "0123456789":
        return None
    if len(current) >= max_digits:
        return None
    return current + ch


def _fit_label(font: pygame.font.Font, label: str, max_width: int) -> str:
    if max_width <= 0:
        return ""
    if font.size(label)[0] <= max_width:
        return label
    clipped = label
    while clipped and font.size(f"{clipped}...")[0] > max_width:
        clipped = clipped[:-1]
    return f"{clipped}..." if clipped else "..."


def _draw_frame(
    surface: pygame.Surface,
    *,
    title: str,
    tag: str,
    footer: str,
    title_font: pygame.font.Font,
    hint_font: pygame.font.Font,
    status: str = "",
) -> pygame.Rect:
    """Draw the shared panel chrome and return the content rect."""

    w, h = surface.get_size()
    surface.fill(BG)

    frame_margin = max(10, min(26, w // 34))
    frame = pygame.Rect(
        frame_margin,
        frame_margin,
        max(260, w - frame_margin * 2),
        max(220, h - frame_margin * 2),
    )
    pygame.draw.rect(surface, PANEL_BG, frame)
    pygame.draw.rect(surface, BORDER, frame, 2)

    header_h = max(34, min(52, h // 8))
    header = pygame.Rect(frame.x + 2, frame.y + 2, frame.w - 4, header_h)
    pygame.draw.rect(surface, HEADER_BG, header)
    pygame.draw.line(surface, BORDER, (header.x, header.bottom), (header.right, header.bottom), 1)

    tag_s = hint_font.render(tag, True, TEXT_MUTED)
    surface.blit(tag_s, (header.x + 12, header.y + (header.h - tag_s.get_height()) // 2))
    title_s = title_font.render(_fit_label(title_font, title, header.w - 200), True, TEXT_MAIN)
    surface.blit(title_s, title_s.get_rect(center=(frame.centerx, header.centery)))

    foot = hint_font.render(_fit_label(hint_font, footer, frame.w - 24), True, TEXT_MUTED)
    surface.blit(foot, foot.get_rect(midbottom=(frame.centerx, frame.bottom - 10)))
    bottom = frame.bottom - 16 - foot.get_height()

    if status:
        st = hint_font.render(_fit_label(hint_font, status, frame.w - 24), True, WARN_AMBER)
        surface.blit(st, st.get_rect(midbottom=(frame.centerx, bottom - 4)))
        bottom -= st.get_height() + 8

    return pygame.Rect(frame.x + 14, header.bottom + 12, frame.w - 28, max(40, bottom - header.bottom - 16))


class MenuScreen:
    def __init__(
        self,
        app: App,
        title: str,
        items: list[MenuItem] | Callable[[], list[MenuItem]],
        *,
        is_root: bool = False,
        tag: str = "MENU",
    ) -> None:
        self._app = app
        self._title = title
        self._source = items
        self._items: list[MenuItem] = []
        self._selected = 0
        self._is_root = is_root
        self._tag = tag
        self._title_font = pygame.font.Font(None, 42)
        self._item_font = pygame.font.Font(None, 32)
        self._hint_font = pygame.font.Font(None, 22)
        self.refresh()

    def refresh(self) -> None:
        self._items = self._source() if callable(self._source) else list(self._source)
        if self._items:
            self._selected = min(self._selected, len(self._items) - 1)
        else:
            self._selected = 0

    def on_resume(self) -> None:
        self.refresh()

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.KEYDOWN:
            self._handle_key(event.key)

    def _handle_key(self, key: int) -> None:
        if key in (pygame.K_UP, pygame.K_w):
            self._move(-1)
        elif key in (pygame.K_DOWN, pygame.K_s):
            self._move(1)
        elif key in (pygame.K_RETURN, pygame.K_KP_ENTER, pygame.K_SPACE):
            self._activate()
        elif key in (pygame.K_d, pygame.K_DELETE):
            self._secondary()
        elif key in (pygame.K_ESCAPE, pygame.K_BACKSPACE):
            self._back()

    def _move(self, delta: int) -> None:
        if not self._items:
            return
        self._selected = (self._selected + delta) % len(self._items)

    def _activate(self) -> None:
        if not self._items:
            return
        self._run(self._items[self._selected].action)

    def _secondary(self) -> None:
        if not self._items:
            return
        action = self._items[self._selected].secondary
        if action is None:
            return
        self._run(action)
        self.refresh()

    def _run(self, action: Callable[[], None]) -> None:
        try:
            action()
        except MathCoachError as exc:
            self._app.notify(str(exc))

    def _back(self) -> None:
        if self._is_root:
            self._app.quit()
        else:
            self._app.pop()

    def render(self, surface: pygame.Surface) -> None:
        content = _draw_frame(
            surface,
            title=self._title,
            tag=self._tag,
            footer="Enter: Select  |  D: Deactivate  |  Esc: Back",
            title_font=self._title_font,
            hint_font=self._hint_font,
            status=self._app.status,
        )
        pygame.draw.rect(surface, (6, 13, 92), content)
        pygame.draw.rect(surface, (78, 102, 170), content, 1)

        row_h = 36
        gap = 6
        visible = max(1, (content.h - 16) // (row_h + gap))
        first = 0 if self._selected < visible else self._selected - visible + 1
        y = content.y + 8
        for idx in range(first, min(len(self._items), first + visible)):
            item = self._items[idx]
            row = pygame.Rect(content.x + 12, y, content.w - 24, row_h)
            selected = idx == self._selected
            if selected:
                pygame.draw.rect(surface, ACTIVE_BG, row)
                pygame.draw.rect(surface, (120, 142, 196), row, 2)
            else:
                pygame.draw.rect(surface, (9, 20, 106), row)
                pygame.draw.rect(surface, (62, 84, 152), row, 1)
            color = ACTIVE_TEXT if selected else TEXT_MAIN
            label = _fit_label(self._item_font, item.label, row.w - 20)
            text = self._item_font.render(label, True, color)
            surface.blit(text, (row.x + 10, row.y + (row.h - text.get_height()) // 2))
            y += row_h + gap


def _task_label(task: TaskRecord) -> str:
    return f"{task.title}  ({task.question_count} q, {_fmt_minutes(task.time_limit_s)})"


class TaskCreationScreen:
    """Fact grid + task settings form shared by coaches and students.

    Tab cycles the focused field. Each field maps arrows/Space onto its own
    edit; F5 (or Ctrl+S) saves.
    """

    def __init__(self, app: App, *, creator: ProfileRecord, students: list[ProfileRecord] | None = None) -> None:
        self._app = app
        self._creator = creator
        self._students = list(students or [])
        defaults = app.config.task_defaults
        self._defaults = defaults

        self._title = ""
        self._grid = FactGrid.full(defaults.grid_size)
        self._cursor = (0, 0)
        self._count = defaults.question_count
        self._time_limit = defaults.time_limit_s
        self._layout = defaults.layout
        self._pass, self._good, self._master = defaults.thresholds_for(self._count)
        self._threshold_row = 0
        self._assigned: set[int] = {s.id for s in self._students} if creator.is_coach else set()
        self._assign_row = 0
        self._rng = SeededRng(new_seed())
        self._questions: list[Question] = generate_questions(self._grid.facts(), self._count, rng=self._rng)
        self._stale = False
        self._error = ""

        self._fields = ["title", "grid", "count", "time", "layout", "thresholds"]
        if creator.is_coach and self._students:
            self._fields.append("assign")
        self._fields.append("preview")
        self._field = 0

        self._title_font = pygame.font.Font(None, 36)
        self._small_font = pygame.font.Font(None, 24)
        self._tiny_font = pygame.font.Font(None, 20)

    @property
    def field(self) -> str:
        return self._fields[self._field]

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return
        key = event.key
        ctrl = bool(getattr(event, "mod", 0) & pygame.KMOD_CTRL)

        if key == pygame.K_ESCAPE:
            self._app.pop()
            return
        if key == pygame.K_F5 or (ctrl and key == pygame.K_s):
            self._save()
            return
        if key == pygame.K_TAB:
            step = -1 if getattr(event, "mod", 0) & pygame.KMOD_SHIFT else 1
            self._field = (self._field + step) % len(self._fields)
            return

        handler = getattr(self, f"_key_{self.field}")
        handler(key, getattr(event, "unicode", ""))

    def _key_title(self, key: int, ch: str) -> None:
        if key == pygame.K_BACKSPACE:
            self._title = self._title[:-1]
        elif ch and ch.isprintable() and len(self._title) < 60:
            self._title += ch

    def _key_grid(self, key: int, ch: str) -> None:
        a, b = self._cursor
        n = self._grid.size
        if key == pygame.K_UP:
            self._cursor = ((a - 1) % n, b)
        elif key == pygame.K_DOWN:
            self._cursor = ((a + 1) % n, b)
        elif key == pygame.K_LEFT:
            self._cursor = (a, (b - 1) % n)
        elif key == pygame.K_RIGHT:
            self._cursor = (a, (b + 1) % n)
        elif key == pygame.K_SPACE:
            self._grid.toggle(a, b)
            self._stale = True
        elif key == pygame.K_r:
            self._grid.toggle_row(a)
            self._stale = True
        elif key == pygame.K_c:
            self._grid.toggle_column(b)
            self._stale = True
        elif key == pygame.K_a:
            self._grid.select_all()
            self._stale = True
        elif key == pygame.K_x:
            self._grid.clear()
            self._stale = True

    def _key_count(self, key: int, ch: str) -> None:
        d = self._defaults
        presets = list(d.question_count_presets)
        if key in (pygame.K_LEFT, pygame.K_RIGHT):
            lower = [p for p in presets if p < self._count]
            higher = [p for p in presets if p > self._count]
            if key == pygame.K_LEFT and lower:
                self._apply_count(lower[-1])
            elif key == pygame.K_RIGHT and higher:
                self._apply_count(higher[0])
        elif key == pygame.K_UP:
            self._apply_count(min(d.max_custom_count, self._count + 1))
        elif key == pygame.K_DOWN:
            self._apply_count(max(d.min_custom_count, self._count - 1))

    def _apply_count(self, count: int) -> None:
        if count == self._count:
            return
        self._count = count
        self._pass, self._good, self._master = self._defaults.thresholds_for(count)
        self._stale = True

    def _key_time(self, key: int, ch: str) -> None:
        d = self._defaults
        if key in (pygame.K_RIGHT, pygame.K_UP):
            self._time_limit = min(d.max_time_limit_s, self._time_limit + d.time_limit_step_s)
        elif key in (pygame.K_LEFT, pygame.K_DOWN):
            self._time_limit = max(d.min_time_limit_s, self._time_limit - d.time_limit_step_s)

    def _key_layout(self, key: int, ch: str) -> None:
        if key in (pygame.K_LEFT, pygame.K_RIGHT, pygame.K_SPACE):
            idx = LAYOUTS.index(self._layout)
            self._layout = LAYOUTS[(idx + 1) % len(LAYOUTS)]

    def _key_thresholds(self, key: int, ch: str) -> None:
        if key == pygame.K_UP:
            self._threshold_row = (self._threshold_row - 1) % 3
        elif key == pygame.K_DOWN:
            self._threshold_row = (self._threshold_row + 1) % 3
        elif key in (pygame.K_LEFT, pygame.K_RIGHT):
            delta = 1 if key == pygame.K_RIGHT else -1
            values = [self._pass, self._good, self._master]
            values[self._threshold_row] = max(0, min(self._count, values[self._threshold_row] + delta))
            self._pass, self._good, self._master = values

    def _key_assign(self, key: int, ch: str) -> None:
        if not self._students:
            return
        if key == pygame.K_UP:
            self._assign_row = (self._assign_row - 1) % len(self._students)
        elif key == pygame.K_DOWN:
            self._assign_row = (self._assign_row + 1) % len(self._students)
        elif key == pygame.K_SPACE:
            sid = self._students[self._assign_row].id
            self._assigned.symmetric_difference_update({sid})
        elif key == pygame.K_a:
            self._assigned = {s.id for s in self._students}
        elif key == pygame.K_x:
            self._assigned.clear()

    def _key_preview(self, key: int, ch: str) -> None:
        if key == pygame.K_g:
            self._regenerate()
        elif key == pygame.K_o:
            self._questions = reshuffle_questions(self._questions, rng=self._rng)

    def _regenerate(self) -> bool:
        facts = self._grid.facts()
        if not facts:
            self._error = "Select at least one multiplication fact first."
            return False
        self._error = ""
        self._questions = generate_questions(facts, self._count, rng=self._rng)
        self._stale = False
        log.dev(f"Questions regenerated - {len(self._questions)} questions from {len(facts)} facts")
        return True

    def _save(self) -> None:
        if not self._title.strip():
            self._error = "Please enter a task title."
            return
        if len(self._grid) == 0:
            self._error = "Select at least one multiplication fact."
            return
        if self._stale and not self._regenerate():
            return

        task = NewTask(
            title=self._title,
            creator_id=self._creator.id,
            time_limit_s=self._time_limit,
            thresholds=GradeThresholds(self._pass, self._good, self._master),
            questions=self._questions,
            assignee_ids=sorted(self._assigned) if self._creator.is_coach else (),
            selected_facts=self._grid.facts(),
            layout=self._layout,
        )
        try:
            created = create_task(self._app.store, task)
        except MathCoachError as exc:
            self._error = str(exc)
            return
        self._app.pop()
        self._app.notify(f"Saved '{task.title.strip()}' ({len(created)} task record(s)).")

    def render(self, surface: pygame.Surface) -> None:
        content = _draw_frame(
            surface,
            title="New Task",
            tag="CREATE",
            footer="Tab: Field  |  Arrows/Space: Edit  |  Grid: R row, C col, A all, X clear  |  G regen, O reorder  |  F5: Save",
            title_font=self._title_font,
            hint_font=self._tiny_font,
            status=self._error,
        )
        self._render_grid(surface, content)
        self._render_settings(surface, content)

    def _render_grid(self, surface: pygame.Surface, content: pygame.Rect) -> None:
        n = self._grid.size
        cell = max(14, min(30, (content.h - 24) // (n + 1)))
        ox, oy = content.x + 8, content.y + 22
        label = self._small_font.render("Facts (row x column)", True, TEXT_MUTED)
        surface.blit(label, (ox, content.y))
        focused = self.field == "grid"
        for i in range(n):
            hdr = self._tiny_font.render(str(i), True, TEXT_MUTED)
            surface.blit(hdr, hdr.get_rect(center=(ox + cell * (i + 1) + cell // 2, oy + cell // 2)))
            surface.blit(hdr, hdr.get_rect(center=(ox + cell // 2, oy + cell * (i + 1) + cell // 2)))
        for a in range(n):
            for b in range(n):
                r = pygame.Rect(ox + cell * (b + 1), oy + cell * (a + 1), cell - 2, cell - 2)
                on = (a, b) in self._grid
                pygame.draw.rect(surface, (60, 140, 220) if on else (20, 30, 90), r)
                if focused and (a, b) == self._cursor:
                    pygame.draw.rect(surface, ACTIVE_BG, r, 2)

    def _render_settings(self, surface: pygame.Surface, content: pygame.Rect) -> None:
        x = content.x + content.w // 2 - 40
        y = content.y
        lines: list[tuple[str, str]] = [
            ("title", f"Title: {self._title}" + ("_" if self.field == "title" else "")),
            ("grid", f"Facts selected: {len(self._grid)}"),
            ("count", f"Questions: {self._count}  (presets {', '.join(map(str, self._defaults.question_count_presets))})"),
            ("time", f"Time limit: {_fmt_minutes(self._time_limit)}"),
            ("layout", f"Layout: {self._layout}"),
        ]
        for key, text in lines:
            color = ACTIVE_BG if self.field == key else TEXT_MAIN
            surface.blit(self._small_font.render(text, True, color), (x, y))
            y += 26

        names = ("Pass", "Good", "Master")
        values = (self._pass, self._good, self._master)
        for i, (name, value) in enumerate(zip(names, values)):
            active = self.field == "thresholds" and i == self._threshold_row
            color = ACTIVE_BG if active else TEXT_MAIN
            surface.blit(self._small_font.render(f"{name}: {value} / {self._count}", True, color), (x, y))
            y += 24

        if "assign" in self._fields:
            y += 4
            hint = "Assign to" if self._assigned else "Assign to (none: saved unassigned)"
            surface.blit(self._small_font.render(hint, True, TEXT_MUTED), (x, y))
            y += 24
            for i, s in enumerate(self._students):
                mark = "[x]" if s.id in self._assigned else "[ ]"
                active = self.field == "assign" and i == self._assign_row
                color = ACTIVE_BG if active else TEXT_MAIN
                surface.blit(self._small_font.render(f"{mark} {s.name}", True, color), (x + 10, y))
                y += 22

        y += 6
        color = ACTIVE_BG if self.field == "preview" else TEXT_MUTED
        stale = "  (will regenerate on save)" if self._stale else ""
        surface.blit(self._small_font.render(f"Preview{stale}", True, color), (x, y))
        y += 24
        preview = "  ".join(f"{q.operand1}x{q.operand2}" for q in self._questions[:24])
        words = preview.split("  ")
        line = ""
        max_w = content.right - x
        for w in words:
            candidate = f"{line}  {w}" if line else w
            if self._tiny_font.size(candidate)[0] > max_w:
                surface.blit(self._tiny_font.render(line, True, TEXT_MUTED), (x, y))
                y += 18
                line = w
            else:
                line = candidate
        if line and y < content.bottom - 18:
            surface.blit(self._tiny_font.render(line, True, TEXT_MUTED), (x, y))


class AttemptScreen:
    """Drives one AttemptSession; redraws from the snapshots it publishes."""

    def __init__(self, app: App, *, task: TaskRecord, student: ProfileRecord, clock: Clock) -> None:
        self._app = app
        self._task = task
        self._student = student
        self._ticker = ClockTicker(clock)
        self._session = AttemptSession(
            task_id=task.id,
            student_id=student.id,
            questions=task.questions,
            time_limit_s=task.time_limit_s,
            submitter=store_submitter(app.store),
            ticker=self._ticker,
        )
        self._state = self._session.state
        self._unsubscribe = self._session.subscribe(self._on_state)
        self._mode_choice = 0

        self._title_font = pygame.font.Font(None, 36)
        self._big_font = pygame.font.Font(None, 64)
        self._mid_font = pygame.font.Font(None, 40)
        self._small_font = pygame.font.Font(None, 26)
        self._tiny_font = pygame.font.Font(None, 20)

    @property
    def session(self) -> AttemptSession:
        return self._session

    def _on_state(self, state: AttemptState) -> None:
        self._state = state

    def close(self) -> None:
        self._unsubscribe()
        self._session.close()

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return
        s = self._state
        if isinstance(s, ModeSelection):
            self._handle_mode_key(event.key)
        elif isinstance(s, Running):
            self._handle_running_key(event, s)
        elif isinstance(s, Finished):
            if event.key == pygame.K_r:
                self._session.retry()
            elif event.key in (pygame.K_ESCAPE, pygame.K_RETURN, pygame.K_KP_ENTER):
                self._app.pop()

    def _handle_mode_key(self, key: int) -> None:
        if key == pygame.K_t:
            self._session.choose_mode(Mode.TEST)
        elif key == pygame.K_r:
            self._session.choose_mode(Mode.TRAIN)
        elif key in (pygame.K_UP, pygame.K_DOWN):
            self._mode_choice = 1 - self._mode_choice
        elif key in (pygame.K_RETURN, pygame.K_KP_ENTER, pygame.K_SPACE):
            self._session.choose_mode(Mode.TEST if self._mode_choice == 0 else Mode.TRAIN)
        elif key in (pygame.K_ESCAPE, pygame.K_BACKSPACE):
            self._app.pop()

    def _handle_running_key(self, event: pygame.event.Event, s: Running) -> None:
        key = event.key
        ctrl = bool(getattr(event, "mod", 0) & pygame.KMOD_CTRL)
        q = self._session.questions[s.focus]
        current = s.answers.get(q.id, "")

        if key == pygame.K_ESCAPE and (getattr(event, "mod", 0) & pygame.KMOD_SHIFT):
            self._app.pop()
        elif key == pygame.K_F2 or (ctrl and key in (pygame.K_RETURN, pygame.K_KP_ENTER)):
            self._session.submit()
        elif key in (pygame.K_RETURN, pygame.K_KP_ENTER):
            self._session.press_enter()
        elif key in (pygame.K_DOWN, pygame.K_TAB):
            self._session.focus(s.focus + 1)
        elif key == pygame.K_UP:
            self._session.focus(s.focus - 1)
        elif key == pygame.K_BACKSPACE:
            self._session.set_answer(q.id, current[:-1])
        else:
            typed = append_digit(current, getattr(event, "unicode", ""), self._app.config.task_defaults.max_answer_digits)
            if typed is not None:
                self._session.set_answer(q.id, typed)

    def render(self, surface: pygame.Surface) -> None:
        # Cooperative timer: due ticks fire here, on the UI thread.
        self._ticker.pump()
        s = self._state
        if isinstance(s, ModeSelection):
            self._render_mode_selection(surface)
        elif isinstance(s, (Running, Submitting)):
            self._render_running(surface, s)
        elif isinstance(s, Finished):
            self._render_finished(surface, s)

    def _render_mode_selection(self, surface: pygame.Surface) -> None:
        content = _draw_frame(
            surface,
            title=self._task.title,
            tag="ATTEMPT",
            footer="T: Test  |  R: Train  |  Up/Down + Enter  |  Esc: Back",
            title_font=self._title_font,
            hint_font=self._tiny_font,
        )
        info = f"{self._task.question_count} questions  |  {_fmt_minutes(self._task.time_limit_s)}"
        surface.blit(self._small_font.render(info, True, TEXT_MUTED), (content.x + 10, content.y + 10))
        options = [
            ("Test", "Timer counts down; answers are submitted when it reaches zero."),
            ("Train", "Timer counts up and keeps going past the limit; submit when ready."),
        ]
        y = content.y + 60
        for i, (name, desc) in enumerate(options):
            row = pygame.Rect(content.x + 10, y, content.w - 20, 64)
            selected = i == self._mode_choice
            pygame.draw.rect(surface, ACTIVE_BG if selected else (9, 20, 106), row)
            pygame.draw.rect(surface, (62, 84, 152), row, 1)
            color = ACTIVE_TEXT if selected else TEXT_MAIN
            surface.blit(self._mid_font.render(name, True, color), (row.x + 12, row.y + 6))
            surface.blit(self._tiny_font.render(desc, True, color), (row.x + 14, row.y + 40))
            y += 80

    def _render_running(self, surface: pygame.Surface, s: Running | Submitting) -> None:
        saving = isinstance(s, Submitting)
        error = s.error if isinstance(s, Running) else None
        content = _draw_frame(
            surface,
            title=self._task.title,
            tag="TEST" if s.mode is Mode.TEST else "TRAIN",
            footer="Type digits  |  Enter: Next (submits on last)  |  Up/Down: Move  |  F2: Submit  |  Shift+Esc: Leave",
            title_font=self._title_font,
            hint_font=self._tiny_font,
            status=error or "",
        )

        remaining = self._session.time_remaining_s()
        if remaining is not None:
            timer_text = _fmt_clock(remaining)
            timer_color = BAD_RED if remaining <= 60 else TEXT_MAIN
        else:
            timer_text = _fmt_clock(self._session.elapsed_s())
            overtime = isinstance(s, Running) and s.overtime
            timer_color = WARN_AMBER if overtime else TEXT_MAIN
            if overtime:
                timer_text += "  OVERTIME"
        surface.blit(self._mid_font.render(timer_text, True, timer_color), (content.x + 6, content.y))
        if saving:
            saving_s = self._small_font.render("Saving...", True, TEXT_MUTED)
            surface.blit(saving_s, saving_s.get_rect(topright=(content.right - 6, content.y + 6)))

        grid = pygame.Rect(content.x, content.y + 44, content.w, content.h - 44)
        vertical = self._task.layout == "vertical"
        cell_w = 92 if vertical else 180
        cell_h = 78 if vertical else 34
        cols = max(1, grid.w // (cell_w + 8))
        rows_visible = max(1, grid.h // (cell_h + 8))
        focus = s.focus if isinstance(s, Running) else -1
        focus_row = max(0, focus) // cols
        first_row = max(0, focus_row - rows_visible + 1)

        for idx, q in enumerate(self._session.questions):
            row, col = divmod(idx, cols)
            if row < first_row or row >= first_row + rows_visible:
                continue
            r = pygame.Rect(
                grid.x + col * (cell_w + 8),
                grid.y + (row - first_row) * (cell_h + 8),
                cell_w,
                cell_h,
            )
            pygame.draw.rect(surface, (9, 20, 106), r)
            pygame.draw.rect(surface, ACTIVE_BG if idx == focus else (62, 84, 152), r, 2 if idx == focus else 1)
            answer = s.answers.get(q.id, "")
            shown = answer + ("_" if idx == focus else "") or "?"
            if vertical:
                a_s = self._small_font.render(str(q.operand1), True, TEXT_MAIN)
                b_s = self._small_font.render(f"x {q.operand2}", True, TEXT_MAIN)
                surface.blit(a_s, a_s.get_rect(topright=(r.right - 8, r.y + 4)))
                surface.blit(b_s, b_s.get_rect(topright=(r.right - 8, r.y + 24)))
                pygame.draw.line(surface, TEXT_MUTED, (r.x + 8, r.y + 48), (r.right - 8, r.y + 48), 1)
                ans_s = self._small_font.render(shown, True, (140, 200, 255))
                surface.blit(ans_s, ans_s.get_rect(topright=(r.right - 8, r.y + 52)))
            else:
                text = self._small_font.render(f"{q.operand1} x {q.operand2} = {shown}", True, TEXT_MAIN)
                surface.blit(text, (r.x + 8, r.y + (r.h - text.get_height()) // 2))

    def _render_finished(self, surface: pygame.Surface, s: Finished) -> None:
        res = s.result
        content = _draw_frame(
            surface,
            title=self._task.title,
            tag="RESULTS",
            footer="R: Try again  |  Enter/Esc: Back to dashboard",
            title_font=self._title_font,
            hint_font=self._tiny_font,
        )
        banner = self._big_font.render(GRADE_LABELS[res.grade], True, GRADE_COLORS[res.grade])
        surface.blit(banner, banner.get_rect(midtop=(content.centerx, content.y)))
        summary = f"{res.score} / {res.total}  ({res.score_pct}%)   Time taken: {_fmt_clock(res.time_taken)}"
        if s.auto:
            summary += "   (time's up)"
        sm = self._small_font.render(summary, True, TEXT_MAIN)
        surface.blit(sm, sm.get_rect(midtop=(content.centerx, content.y + 56)))

        cell_w, cell_h = 150, 40
        cols = max(1, content.w // (cell_w + 6))
        top = content.y + 92
        rows_visible = max(1, (content.bottom - top) // (cell_h + 6))
        for b in res.breakdown[: cols * rows_visible]:
            row, col = divmod(b.question_index, cols)
            r = pygame.Rect(content.x + col * (cell_w + 6), top + row * (cell_h + 6), cell_w, cell_h)
            color = OK_GREEN if b.is_correct else BAD_RED
            pygame.draw.rect(surface, (9, 20, 106), r)
            pygame.draw.rect(surface, color, r, 1)
            head = self._tiny_font.render(f"{b.operand1} x {b.operand2}", True, TEXT_MAIN)
            surface.blit(head, (r.x + 6, r.y + 4))
            if b.is_correct:
                detail = f"ok {b.correct_answer}"
            else:
                you = "-" if b.user_answer is None else str(b.user_answer)
                detail = f"You: {you}  Ans: {b.correct_answer}"
            surface.blit(self._tiny_font.render(detail, True, color), (r.x + 6, r.y + 21))


class ReportScreen:
    def __init__(self, app: App, *, student: ProfileRecord) -> None:
        self._app = app
        self._report = student_report(app.store, student.id)
        self._index = 0
        self._title_font = pygame.font.Font(None, 36)
        self._small_font = pygame.font.Font(None, 24)
        self._tiny_font = pygame.font.Font(None, 18)

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return
        n = len(self._report.tasks)
        if event.key in (pygame.K_ESCAPE, pygame.K_BACKSPACE, pygame.K_RETURN):
            self._app.pop()
        elif n and event.key in (pygame.K_DOWN, pygame.K_RIGHT):
            self._index = (self._index + 1) % n
        elif n and event.key in (pygame.K_UP, pygame.K_LEFT):
            self._index = (self._index - 1) % n

    def render(self, surface: pygame.Surface) -> None:
        content = _draw_frame(
            surface,
            title=f"{self._report.student.name} - Reports",
            tag="REPORT",
            footer="Up/Down: Task  |  Esc: Back",
            title_font=self._title_font,
            hint_font=self._tiny_font,
        )
        if not self._report.tasks:
            msg = self._small_font.render("No tasks with recorded attempts yet.", True, TEXT_MUTED)
            surface.blit(msg, (content.x + 10, content.y + 10))
            return

        t = self._report.tasks[self._index]
        head = f"{t.title}   ({self._index + 1}/{len(self._report.tasks)})"
        surface.blit(self._small_font.render(head, True, TEXT_MAIN), (content.x + 6, content.y))
        best = "-" if t.best_pct is None else f"{t.best_pct}%"
        latest = GRADE_LABELS[Grade(t.latest_grade)] if t.latest_grade else "-"
        stats = f"Attempts: {t.attempts}   Best: {best}   Latest: {latest}"
        surface.blit(self._small_font.render(stats, True, TEXT_MUTED), (content.x + 6, content.y + 24))

        chart = pygame.Rect(content.x + 40, content.y + 60, content.w - 60, content.h - 90)
        pygame.draw.rect(surface, (6, 13, 92), chart)
        pygame.draw.rect(surface, (78, 102, 170), chart, 1)
        for pct_value, color in ((t.pass_pct, OK_GREEN), (t.good_pct, (110, 190, 250)), (t.master_pct, (250, 214, 90))):
            y = chart.bottom - int(chart.h * pct_value / 100)
            pygame.draw.line(surface, color, (chart.x, y), (chart.right, y), 1)
            lab = self._tiny_font.render(f"{pct_value}%", True, color)
            surface.blit(lab, lab.get_rect(midright=(chart.x - 4, y)))
        if not t.points:
            return
        bar_w = max(4, min(40, chart.w // max(1, len(t.points)) - 4))
        for i, p in enumerate(t.points[-(chart.w // (bar_w + 4)):]):
            h = int(chart.h * p.score_pct / 100)
            bar = pygame.Rect(chart.x + 4 + i * (bar_w + 4), chart.bottom - h, bar_w, h)
            pygame.draw.rect(surface, GRADE_COLORS.get(Grade(p.grade), TEXT_MAIN), bar)


def _profile_menu(app: App, clock: Clock) -> Callable[[], list[MenuItem]]:
    def open_coach(coach: ProfileRecord) -> None:
        app.push(MenuScreen(app, "Coach Dashboard", _coach_items(app, coach, clock), tag="COACH"))

    def open_student(student: ProfileRecord) -> None:
        app.push(MenuScreen(app, student.name, _student_items(app, student, clock), tag="STUDENT"))

    def items() -> list[MenuItem]:
        out: list[MenuItem] = []
        for p in app.store.list_profiles():
            if p.is_coach:
                out.append(MenuItem(f"{p.name} (coach)", lambda p=p: open_coach(p)))
            else:
                out.append(MenuItem(p.name, lambda p=p: open_student(p)))
        out.append(MenuItem("Quit", app.quit))
        return out

    return items


def _deactivate(app: App, task: TaskRecord, requester: ProfileRecord) -> None:
    deactivate_task(app.store, task.id, requester.id)
    app.notify(f"Deactivated '{task.title}'.")


def _coach_items(app: App, coach: ProfileRecord, clock: Clock) -> Callable[[], list[MenuItem]]:
    def items() -> list[MenuItem]:
        out: list[MenuItem] = []
        roster = coach_roster(app.store, coach.id)
        for entry in roster:
            student = entry.student
            out.append(MenuItem(f"{student.name}: reports", lambda s=student: app.push(ReportScreen(app, student=s))))
            for t in entry.tasks:
                out.append(
                    MenuItem(
                        f"    {_task_label(t)}",
                        lambda s=student: app.push(ReportScreen(app, student=s)),
                        secondary=lambda t=t: _deactivate(app, t, coach),
                    )
                )
        students = [e.student for e in roster]
        out.append(
            MenuItem("Create task", lambda: app.push(TaskCreationScreen(app, creator=coach, students=students)))
        )
        out.append(MenuItem("Back", app.pop))
        return out

    return items


def _student_items(app: App, student: ProfileRecord, clock: Clock) -> Callable[[], list[MenuItem]]:
    def open_attempt(task_id: int) -> None:
        task = load_task_for_attempt(app.store, student.id, task_id)
        app.push(AttemptScreen(app, task=task, student=student, clock=clock))

    def items() -> list[MenuItem]:
        out = [
            MenuItem(
                _task_label(t),
                lambda t=t: open_attempt(t.id),
                secondary=lambda t=t: _deactivate(app, t, student),
            )
            for t in list_student_tasks(app.store, student.id)
        ]
        out.append(MenuItem("Create my own task", lambda: app.push(TaskCreationScreen(app, creator=student))))
        out.append(MenuItem("Reports", lambda: app.push(ReportScreen(app, student=student))))
        out.append(MenuItem("Back", app.pop))
        return out

    return items


def run(
    *,
    max_frames: int | None = None,
    event_injector: Callable[[int], None] | None = None,
    config: AppConfig | None = None,
    clock: Clock | None = None,
) -> int:
    cfg = config or load_config()
    store = Store.open(cfg.db_path)
    try:
        if cfg.seed_on_start:
            seed_demo_profiles(store)
        return _run_window(
            store=store,
            config=cfg,
            clock=clock or RealClock(),
            max_frames=max_frames,
            event_injector=event_injector,
        )
    finally:
        store.close()


def _run_window(
    *,
    store: Store,
    config: AppConfig,
    clock: Clock,
    max_frames: int | None,
    event_injector: Callable[[int], None] | None,
) -> int:
    pygame.init()
    pygame.display.set_caption("Math Coach")
    surface = pygame.display.set_mode(WINDOW_SIZE, pygame.RESIZABLE)

    font = pygame.font.Font(None, 36)
    frame_clock = pygame.time.Clock()

    app = App(surface=surface, font=font, store=store, config=config)
    app.push(MenuScreen(app, "Who's practising today?", _profile_menu(app, clock), is_root=True, tag="MATH COACH"))
    log.dev("Profile picker loaded")

    frame = 0
    try:
        while app.running:
            if event_injector is not None:
                event_injector(frame)

            for event in pygame.event.get():
                app.handle_event(event)

            app.render()

            pygame.display.flip()

            frame += 1
            if max_frames is not None and frame >= max_frames:
                break

            frame_clock.tick(TARGET_FPS)
    finally:
        app.shutdown()
        pygame.quit()

    return 0
