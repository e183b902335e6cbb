"""Tests for the SessionController state machine and cycle."""

import signal

import psutil
import pytest

from proctop.config import Settings
from proctop.ranking import SortMode
from proctop.session import (
    TRANSITIONS,
    Command,
    SessionController,
    SessionState,
    parse_kill_target,
)


@pytest.fixture
def controller(source, terminate, clock):
    return SessionController(source, terminate=terminate, settings=Settings(), clock=clock)


class TestParseKillTarget:
    """Tests for kill prompt parsing."""

    @pytest.mark.parametrize("text", ["abc", "-5", "0", "", "   ", "12abc", "1.5", "²"])
    def test_rejects_malformed_input(self, text):
        """Test non-numeric and non-positive input is ignored."""
        assert parse_kill_target(text) is None

    @pytest.mark.parametrize(("text", "pid"), [("1234", 1234), (" 42\n", 42), ("007", 7)])
    def test_accepts_positive_integers(self, text, pid):
        """Test positive integers are accepted, surrounding whitespace stripped."""
        assert parse_kill_target(text) == pid


class TestTransitions:
    """Tests for the explicit transition table."""

    def test_initial_state_is_polling(self, controller):
        """Test a new session polls with CPU sort."""
        assert controller.state is SessionState.POLLING
        assert controller.sort_mode is SortMode.CPU
        assert controller.running

    def test_terminated_has_no_exits(self):
        """Test no transition leaves the terminated state."""
        assert not [key for key in TRANSITIONS if key[0] is SessionState.TERMINATED]

    def test_quit_terminates(self, controller):
        """Test the quit command ends the session."""
        assert controller.handle(Command.QUIT)
        assert controller.state is SessionState.TERMINATED
        assert not controller.running

    def test_no_command_is_ignored(self, controller):
        """Test polling with no pending key changes nothing."""
        assert not controller.handle(None)
        assert controller.state is SessionState.POLLING

    def test_cycle_sort_advances_cyclically(self, controller):
        """Test sort toggling visits CPU, MEM, PID and wraps."""
        seen = []
        for _ in range(4):
            controller.handle(Command.CYCLE_SORT)
            seen.append(controller.sort_mode)

        assert seen == [SortMode.MEM, SortMode.PID, SortMode.CPU, SortMode.MEM]
        assert controller.state is SessionState.POLLING

    def test_kill_enters_awaiting_target(self, controller):
        """Test the kill command switches to the blocking prompt state."""
        assert controller.handle(Command.KILL)
        assert controller.state is SessionState.AWAITING_KILL_TARGET

    def test_commands_ignored_while_awaiting_target(self, controller):
        """Test sort and quit do nothing while the prompt is open."""
        controller.handle(Command.KILL)

        assert not controller.handle(Command.CYCLE_SORT)
        assert not controller.handle(Command.QUIT)
        assert controller.sort_mode is SortMode.CPU
        assert controller.state is SessionState.AWAITING_KILL_TARGET

    def test_commands_ignored_after_quit(self, controller):
        """Test nothing happens once the session is terminated."""
        controller.handle(Command.QUIT)

        assert not controller.handle(Command.KILL)
        assert controller.state is SessionState.TERMINATED


class TestKillFlow:
    """Tests for the AwaitingKillTarget algorithm."""

    @pytest.mark.parametrize("text", ["abc", "-5"])
    def test_malformed_target_makes_no_call(self, controller, terminate, text):
        """Test malformed input makes zero terminate calls and returns to polling."""
        controller.handle(Command.KILL)

        assert controller.submit_kill_target(text) is None
        assert terminate.calls == []
        assert controller.state is SessionState.POLLING

    def test_valid_target_makes_one_call(self, controller, terminate):
        """Test a valid pid makes exactly one SIGTERM call."""
        controller.handle(Command.KILL)

        result = controller.submit_kill_target("1234")

        assert terminate.calls == [(1234, signal.SIGTERM)]
        assert result is not None and result.ok
        assert controller.state is SessionState.AWAITING_KILL_TARGET

        controller.acknowledge()
        assert controller.state is SessionState.POLLING

    def test_failed_terminate_is_reported_not_raised(self, source, clock, failing_terminate):
        """Test a failed terminate call becomes status text and polling resumes."""
        controller = SessionController(source, terminate=failing_terminate, clock=clock)
        controller.handle(Command.KILL)

        result = controller.submit_kill_target("99")
        controller.acknowledge()

        assert result is not None and not result.ok
        assert controller.state is SessionState.POLLING
        assert "Failed to kill 99" in controller.cycle().summary.status

    def test_status_is_shown_once(self, controller):
        """Test the kill outcome appears in exactly one frame."""
        controller.handle(Command.KILL)
        controller.submit_kill_target("1234")
        controller.acknowledge()

        assert controller.cycle().summary.status == "Sent SIGTERM to 1234"
        assert controller.cycle().summary.status == ""

    def test_submit_outside_prompt_is_ignored(self, controller, terminate):
        """Test a kill target is not accepted unless the prompt is open."""
        assert controller.submit_kill_target("1234") is None
        assert terminate.calls == []

    def test_acknowledge_while_polling_is_harmless(self, controller):
        """Test a stray acknowledgement keeps the session polling."""
        controller.acknowledge()

        assert controller.state is SessionState.POLLING


class TestCycle:
    """Tests for one sample/account/rank cycle."""

    def test_first_cycle_reports_zero_cpu(self, controller, source, make_samples):
        """Test processes report 0% on the cycle they are first seen."""
        source.processes = make_samples((1, 500, 100_000), (2, 900, 200_000))

        frame = controller.cycle()

        assert [row.cpu_percent for row in frame.rows] == [0.0, 0.0]
        assert frame.summary.cpu_percent == 0.0

    def test_cpu_uses_real_elapsed_time(self, controller, source, clock, make_samples):
        """Test percentages follow the measured interval, not the cadence."""
        source.processes = make_samples((1, 100, 0))
        clock.advance(1.0)
        controller.cycle()

        source.processes = make_samples((1, 150, 0))
        clock.advance(2.0)
        frame = controller.cycle()

        assert frame.rows[0].cpu_percent == pytest.approx(25.0)

    def test_rows_ranked_by_current_mode(self, controller, source, clock, make_samples):
        """Test rows are ranked with the current sort mode."""
        source.processes = make_samples((1, 0, 100_000), (2, 0, 300_000), (3, 0, 200_000))
        clock.advance(1.0)
        controller.cycle()

        source.processes = make_samples((1, 10, 100_000), (2, 50, 300_000), (3, 30, 200_000))
        clock.advance(1.0)
        assert [row.pid for row in controller.cycle().rows] == [2, 3, 1]

        controller.handle(Command.CYCLE_SORT)
        clock.advance(1.0)
        frame = controller.cycle()
        assert [row.pid for row in frame.rows] == [2, 3, 1]
        assert frame.summary.sort_label == "MEM %"

        controller.handle(Command.CYCLE_SORT)
        clock.advance(1.0)
        assert [row.pid for row in controller.cycle().rows] == [1, 2, 3]

    def test_exited_process_disappears(self, controller, source, clock, make_samples):
        """Test a process gone in cycle N+1 is absent from that cycle's rows."""
        source.processes = make_samples((1, 0, 0), (2, 0, 0))
        controller.cycle()

        source.processes = make_samples((2, 10, 0))
        clock.advance(1.0)
        frame = controller.cycle()

        assert [row.pid for row in frame.rows] == [2]
        assert frame.summary.process_count == 1

    def test_max_rows_bounds_output(self, controller, source, make_samples):
        """Test the presentation layer gets at most the rows it can show."""
        source.processes = make_samples(*[(pid, 0, 0) for pid in range(1, 11)])

        frame = controller.cycle(max_rows=3)

        assert [row.pid for row in frame.rows] == [1, 2, 3]
        assert frame.summary.process_count == 10

    def test_summary_figures(self, controller, source, clock, make_samples):
        """Test the summary carries uptime, memory totals and the CPU sum."""
        source.processes = make_samples((1, 0, 0), (2, 0, 0))
        controller.cycle()
        source.processes = make_samples((1, 80, 0), (2, 90, 0))
        clock.advance(1.0)

        summary = controller.cycle().summary

        assert summary.uptime_seconds == 3600.0
        assert summary.cpu_percent == pytest.approx(170.0)
        assert summary.memory_total == 1_000_000
        assert summary.memory_available == 500_000
        assert summary.memory_used_fraction == pytest.approx(0.5)
        assert summary.sort_label == "CPU %"

    def test_process_scan_failure_degrades_to_empty(self, controller, source):
        """Test a failed scan shows an empty table but still a summary."""
        source.process_error = psutil.AccessDenied()

        frame = controller.cycle()

        assert frame.rows == ()
        assert frame.summary.memory_total == 1_000_000

    def test_system_failure_reuses_last_sample(self, controller, source, clock, make_samples):
        """Test a failed system snapshot keeps the previous figures."""
        source.processes = make_samples((1, 0, 250_000))
        controller.cycle()

        source.system_error = OSError("proc unavailable")
        clock.advance(1.0)
        frame = controller.cycle()

        assert frame.summary.memory_total == 1_000_000
        assert frame.rows[0].memory_percent == pytest.approx(25.0)

    def test_system_failure_before_first_sample(self, controller, source, make_samples):
        """Test a failing first system snapshot renders zeros, not an error."""
        source.system_error = OSError("proc unavailable")
        source.processes = make_samples((1, 0, 250_000))

        frame = controller.cycle()

        assert frame.summary.memory_total == 0
        assert frame.rows[0].memory_percent == 0.0


class TestNextDelay:
    """Tests for loop pacing."""

    def test_remaining_cadence(self, controller, clock):
        """Test the wait is the cadence minus the cycle's own duration."""
        controller.cycle()
        clock.advance(0.3)

        assert controller.next_delay() == pytest.approx(0.7)

    def test_overrun_starts_immediately(self, controller, clock):
        """Test a cycle longer than the cadence does not stack delay."""
        controller.cycle()
        clock.advance(2.5)

        assert controller.next_delay() == 0.0

    def test_fast_path_after_input(self, controller):
        """Test a handled command shortens the wait to the fast-path delay."""
        controller.cycle()

        assert controller.next_delay(handled_input=True) == pytest.approx(0.2)

    def test_before_first_cycle(self, controller):
        """Test the first cycle is not delayed."""
        assert controller.next_delay() == 0.0

    def test_custom_settings(self, source, clock):
        """Test cadence and fast-path delay come from settings."""
        settings = Settings(cadence_seconds=2.0, fast_path_delay_ms=50)
        controller = SessionController(source, settings=settings, clock=clock)
        controller.cycle()

        assert controller.next_delay() == pytest.approx(2.0)
        assert controller.next_delay(handled_input=True) == pytest.approx(0.05)
