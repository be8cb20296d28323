import pytest

from cliptrail.clipboard import CONCEALED_TYPE, REMOTE_CLIPBOARD_TYPE, TRANSIENT_TYPE
from cliptrail.config import Settings
from cliptrail.detector import ChangeDetector, DetectorPhase, EngineState, Verdict
from cliptrail.models import ImageSetPayload, SourceApplication, TextPayload

from conftest import make_image


@pytest.fixture
def state():
    return EngineState()


@pytest.fixture
def detector(clipboard, clock, state):
    detector = ChangeDetector(clipboard, clock=clock)
    detector.start(state)
    return detector


class TestCounter:
    def test_start_syncs_counter(self, clipboard, clock):
        clipboard.copy(TextPayload("already there"))
        state = EngineState()
        ChangeDetector(clipboard, clock=clock).start(state)
        assert state.last_change_count == 1
        assert state.phase == DetectorPhase.ARMED

    def test_unarmed_state_adopts_current_counter(self, clipboard, clock, settings):
        clipboard.copy(TextPayload("before arming"))
        state = EngineState()
        detector = ChangeDetector(clipboard, clock=clock)
        assert detector.evaluate(state, settings).verdict == Verdict.UNCHANGED
        assert state.phase == DetectorPhase.ARMED
        assert state.last_change_count == 1

    def test_unchanged(self, detector, state, settings):
        assert detector.evaluate(state, settings).verdict == Verdict.UNCHANGED

    def test_accepts_new_content(self, detector, state, settings, clipboard):
        app = SourceApplication("com.apple.TextEdit", "TextEdit")
        clipboard.copy(TextPayload("hello"), app=app)
        detection = detector.evaluate(state, settings)
        assert detection.accepted
        assert detection.payload == TextPayload("hello")
        assert detection.source_app == app
        assert state.phase == DetectorPhase.ARMED

    def test_same_change_is_seen_once(self, detector, state, settings, clipboard):
        clipboard.copy(TextPayload("hello"))
        assert detector.evaluate(state, settings).accepted
        assert detector.evaluate(state, settings).verdict == Verdict.UNCHANGED

    def test_empty_clipboard(self, detector, state, settings, clipboard):
        clipboard.copy(None)
        assert detector.evaluate(state, settings).verdict == Verdict.EMPTY
        assert state.last_change_count == clipboard.counter

    def test_paused(self, detector, state, settings, clipboard):
        state.monitoring = False
        clipboard.copy(TextPayload("hello"))
        assert detector.evaluate(state, settings).verdict == Verdict.PAUSED
        assert state.last_change_count == 0


class TestSelfWrite:
    def test_change_inside_window_is_suppressed(self, detector, state, settings, clipboard, clock):
        detector.arm_self_write(state)
        assert state.phase == DetectorPhase.SELF_WRITE_WINDOW
        clipboard.write_payload(TextPayload("ours"))
        clock.advance(0.5)
        assert detector.evaluate(state, settings).verdict == Verdict.SELF_WRITE
        assert state.self_write_pending is False
        assert state.phase == DetectorPhase.ARMED

    def test_guard_absorbs_only_one_change(self, detector, state, settings, clipboard, clock):
        detector.arm_self_write(state)
        clipboard.write_payload(TextPayload("ours"))
        detector.evaluate(state, settings)
        clock.advance(0.6)
        clipboard.copy(TextPayload("theirs"))
        assert detector.evaluate(state, settings).accepted

    def test_late_change_is_external(self, detector, state, settings, clipboard, clock):
        detector.arm_self_write(state)
        clock.advance(2.0)
        clipboard.copy(TextPayload("theirs"))
        assert detector.evaluate(state, settings).accepted
        assert state.self_write_pending is False

    def test_guard_expires_without_change(self, detector, state, settings, clock):
        detector.arm_self_write(state)
        clock.advance(5.5)
        assert detector.evaluate(state, settings).verdict == Verdict.UNCHANGED
        assert state.self_write_pending is False
        assert state.phase == DetectorPhase.ARMED

    def test_guard_survives_until_timeout(self, detector, state, settings, clock):
        detector.arm_self_write(state)
        clock.advance(4.0)
        detector.evaluate(state, settings)
        assert state.self_write_pending is True

    def test_clock_going_backwards_drops_guard(self, detector, state, settings, clipboard, clock):
        detector.arm_self_write(state)
        clock.advance(-10)
        clipboard.copy(TextPayload("theirs"))
        assert detector.evaluate(state, settings).accepted


class TestFilters:
    def test_excluded_app_advances_counter(self, detector, state, clipboard):
        settings = Settings(excluded_application_identifiers=frozenset({"com.agilebits.onepassword"}))
        clipboard.copy(TextPayload("secret"), app=SourceApplication("com.agilebits.onepassword"))
        detection = detector.evaluate(state, settings)
        assert detection.verdict == Verdict.EXCLUDED_APP
        assert state.last_change_count == clipboard.counter
        assert detector.evaluate(state, settings).verdict == Verdict.UNCHANGED

    def test_excluded_app_is_not_debounce_anchor(self, detector, state, clipboard, clock):
        settings = Settings(excluded_application_identifiers=frozenset({"com.example.vault"}))
        clipboard.copy(TextPayload("secret"), app=SourceApplication("com.example.vault"))
        detector.evaluate(state, settings)
        clock.advance(0.1)
        clipboard.copy(TextPayload("public"))
        assert detector.evaluate(state, settings).accepted

    def test_concealed_marker_ignored_by_default(self, detector, state, settings, clipboard):
        clipboard.copy(TextPayload("password"), markers={CONCEALED_TYPE})
        assert detector.evaluate(state, settings).verdict == Verdict.IGNORED_MARKER

    def test_transient_marker_can_be_allowed(self, detector, state, clipboard):
        settings = Settings(ignore_transient=False)
        clipboard.copy(TextPayload("temp"), markers={TRANSIENT_TYPE})
        assert detector.evaluate(state, settings).accepted

    def test_remote_marker_opt_in(self, detector, state, clipboard, clock):
        clipboard.copy(TextPayload("from phone"), markers={REMOTE_CLIPBOARD_TYPE})
        assert detector.evaluate(state, Settings()).accepted
        clock.advance(1)
        clipboard.copy(TextPayload("from phone again"), markers={REMOTE_CLIPBOARD_TYPE})
        assert detector.evaluate(state, Settings(ignore_remote=True)).verdict == Verdict.IGNORED_MARKER

    def test_size_limit(self, detector, state, clipboard):
        settings = Settings(ignore_size_limit_mb=0.001)
        clipboard.copy(TextPayload("x" * 5000))
        assert detector.evaluate(state, settings).verdict == Verdict.TOO_LARGE

    def test_size_limit_counts_images(self, detector, state, clipboard):
        settings = Settings(ignore_size_limit_mb=0.00001)
        clipboard.copy(ImageSetPayload((make_image(),)))
        assert detector.evaluate(state, settings).verdict == Verdict.TOO_LARGE


class TestDebounce:
    def test_change_inside_interval_is_dropped(self, detector, state, settings, clipboard, clock):
        clipboard.copy(TextPayload("first"))
        assert detector.evaluate(state, settings).accepted
        clock.advance(0.2)
        clipboard.copy(TextPayload("second"))
        assert detector.evaluate(state, settings).verdict == Verdict.DEBOUNCED
        assert state.last_change_count == clipboard.counter

    def test_change_after_interval_is_accepted(self, detector, state, settings, clipboard, clock):
        clipboard.copy(TextPayload("first"))
        detector.evaluate(state, settings)
        clock.advance(0.5)
        clipboard.copy(TextPayload("second"))
        assert detector.evaluate(state, settings).accepted

    def test_debounce_anchor_is_last_accepted(self, detector, state, settings, clipboard, clock):
        clipboard.copy(TextPayload("first"))
        detector.evaluate(state, settings)
        clock.advance(0.3)
        clipboard.copy(TextPayload("dropped"))
        detector.evaluate(state, settings)
        clock.advance(0.3)
        clipboard.copy(TextPayload("third"))
        assert detector.evaluate(state, settings).accepted
