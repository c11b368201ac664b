"""
Unit tests for the transmission session state machine.
"""

import pytest

from gstream.core.framing import encode
from gstream.core.session import (
    PersistentResendFailure,
    Response,
    SessionSettings,
    SessionState,
    TransmissionSession,
    TransportTimeout,
    classify_response,
)
from gstream.core.transport import MockTransport


RESET_BYTES = b"M112\nM999\n"


def make_session(replies=(), sleeper=None, **settings) -> TransmissionSession:
    transport = MockTransport(replies)
    kwargs = {"sleep": sleeper} if sleeper is not None else {"sleep": lambda s: None}
    return TransmissionSession(transport, total_count=10, settings=SessionSettings(**settings), **kwargs)


class TestClassifyResponse:

    @pytest.mark.parametrize("line", ["ok", "ok T:210.0 /210.0", "ok N5 P15 B3"])
    def test_ok(self, line):
        assert classify_response(line) is Response.OK

    @pytest.mark.parametrize("line", ["Resend: 4", "rs 4", "Resend:4"])
    def test_resend(self, line):
        assert classify_response(line) is Response.RESEND

    @pytest.mark.parametrize("line", ["", "echo:busy: processing", "start", "T:200.0 /200.0"])
    def test_other(self, line):
        assert classify_response(line) is Response.OTHER

    def test_ok_wins(self):
        assert classify_response("Resend: 3 ok") is Response.OK

    def test_case_sensitive(self):
        assert classify_response("OK") is Response.OTHER
        assert classify_response("RESEND: 1") is Response.OTHER


class TestInitialState:

    def test_starts_sending_at_one(self, session):
        assert session.state is SessionState.SENDING
        assert session.sequence_number == 1
        assert session.resend_streak == 0
        assert session.sent_count == 0
        assert session.reset_count == 0


class TestHandleResponse:
    """handle_response is the pure decision step."""

    @pytest.mark.parametrize("prior_resends", [0, 1, 2])
    def test_ok_advances_by_one(self, session, prior_resends):
        session.sequence_number = 5
        for _ in range(prior_resends):
            session.handle_response("Resend: 5")
        assert session.resend_streak == prior_resends

        state = session.handle_response("ok")

        assert state is SessionState.ADVANCED
        assert session.sequence_number == 6
        assert session.resend_streak == 0
        assert session.sent_count == 1

    def test_resend_below_threshold_keeps_waiting(self, session):
        session.send(encode("G28", 1))
        assert session.handle_response("Resend: 1") is SessionState.AWAITING_RESPONSE
        assert session.handle_response("rs 1") is SessionState.AWAITING_RESPONSE
        assert session.resend_streak == 2
        assert session.sequence_number == 1

    def test_third_resend_requests_reset(self, session):
        session.send(encode("G28", 1))
        for _ in range(2):
            session.handle_response("Resend: 1")
        assert session.handle_response("Resend: 1") is SessionState.RESET_IN_PROGRESS

    def test_unrelated_line_changes_nothing(self, session):
        session.send(encode("G28", 1))
        session.handle_response("Resend: 1")
        assert session.handle_response("echo:busy: processing") is SessionState.AWAITING_RESPONSE
        assert session.resend_streak == 1

    def test_no_io(self, session, transport):
        session.handle_response("ok")
        session.handle_response("Resend: 2")
        assert transport.writes == []


class TestTransmit:

    def test_acknowledged_first_time(self, session, transport):
        frame = session.transmit("G28")

        assert frame == encode("G28", 1)
        assert transport.writes == [b"N1 G28*18\n"]
        assert session.sequence_number == 2
        assert session.sent_count == 1
        assert session.state is SessionState.ADVANCED

    def test_state_history(self, session):
        session.transmit("G28")
        assert session.history == [
            SessionState.SENDING,
            SessionState.AWAITING_RESPONSE,
            SessionState.ADVANCED,
        ]

    def test_uses_read_timeout(self, transport, sleeper):
        session = TransmissionSession(transport, settings=SessionSettings(read_timeout=2.5), sleep=sleeper)
        session.transmit("G28")
        assert transport.timeouts == [2.5]

    def test_sequence_numbers_increment(self, session, transport):
        for command in ("G28", "G1 X1", "G1 X2"):
            session.transmit(command)
        assert transport.sent_commands == [
            encode("G28", 1).text,
            encode("G1 X1", 2).text,
            encode("G1 X2", 3).text,
        ]

    def test_resend_retransmits_same_bytes(self):
        session = make_session(["Resend: 1", "rs 1", "ok"])
        frame = session.transmit("G28")

        assert session.transport.writes == [frame.wire] * 3
        assert session.sequence_number == 2
        assert session.resend_streak == 0
        assert session.reset_count == 0

    def test_ignores_chatter(self):
        session = make_session(["echo:busy: processing", "T:200.0 /200.0", "ok"])
        session.transmit("M109 S200")
        assert len(session.transport.writes) == 1
        assert session.sequence_number == 2


class TestEmergencyReset:

    def test_three_resends_trigger_one_reset(self, sleeper):
        session = make_session(["ok", "Resend: 2", "Resend: 2", "Resend: 2", "ok"], sleeper=sleeper)
        session.transmit("G28")

        frame = session.transmit("G1 X1")

        writes = session.transport.writes
        assert writes[0] == encode("G28", 1).wire
        assert writes[1:4] == [encode("G1 X1", 2).wire] * 3
        assert writes[4] == RESET_BYTES
        assert writes[5] == encode("G1 X1", 1).wire
        assert frame == encode("G1 X1", 1)
        assert session.reset_count == 1
        assert session.sequence_number == 2
        assert session.resend_streak == 0
        assert sleeper.calls == [4.0]
        assert session.transport.flush_count == 1

    def test_reset_state_path(self):
        session = make_session(["Resend: 1"] * 3 + ["ok"])
        session.transmit("G28")
        assert session.history == [
            SessionState.SENDING,
            SessionState.AWAITING_RESPONSE,
            SessionState.RESET_IN_PROGRESS,
            SessionState.SENDING,
            SessionState.AWAITING_RESPONSE,
            SessionState.ADVANCED,
        ]

    def test_fourth_resend_starts_fresh_count(self):
        session = make_session(["Resend: 1"] * 4 + ["ok"])
        session.transmit("G28")

        assert session.reset_count == 1
        assert session.transport.writes.count(RESET_BYTES) == 1

    def test_renewed_failure_resets_again(self):
        session = make_session(["Resend: 1"] * 6 + ["ok"])
        session.transmit("G28")

        assert session.reset_count == 2
        assert session.transport.writes.count(RESET_BYTES) == 2

    def test_streak_after_reset(self):
        session = make_session(["Resend: 1"] * 4)
        session.transport.default_reply = None
        with pytest.raises(TransportTimeout):
            session.transmit("G28")
        assert session.reset_count == 1
        assert session.resend_streak == 1

    def test_settle_time_setting(self, sleeper):
        session = make_session(["Resend: 1"] * 3 + ["ok"], sleeper=sleeper, settle_time=0.5)
        session.transmit("G28")
        assert sleeper.calls == [0.5]

    def test_max_resets_cap(self):
        session = make_session(["Resend: 1"] * 6, max_resets=1)
        with pytest.raises(PersistentResendFailure) as exc:
            session.transmit("G28")
        assert exc.value.resets == 1
        assert exc.value.sequence_number == 1
        assert session.transport.writes.count(RESET_BYTES) == 1

    def test_zero_max_resets_fails_immediately(self):
        session = make_session(["Resend: 1"] * 3, max_resets=0)
        with pytest.raises(PersistentResendFailure):
            session.transmit("G28")
        assert RESET_BYTES not in session.transport.writes

    def test_reset_logged(self, capsys):
        session = make_session(["Resend: 1"] * 3 + ["ok"])
        session.transmit("G28")
        assert "FORCING HARD RESET (M112 + M999)" in capsys.readouterr().out


class TestTimeout:

    def test_timeout_is_fatal(self):
        session = make_session([None])
        with pytest.raises(TransportTimeout) as exc:
            session.transmit("G28")

        assert session.state is SessionState.FATAL_TIMEOUT
        assert exc.value.sequence_number == 1
        assert exc.value.phase == "acknowledgement"
        assert len(session.transport.writes) == 1

    def test_timeout_not_counted_as_resend(self):
        session = make_session(["Resend: 1", None])
        with pytest.raises(TransportTimeout):
            session.transmit("G28")
        assert session.resend_streak == 1
        assert session.reset_count == 0

    def test_reports_attempted_sequence_number(self):
        session = make_session(["ok", "ok", None])
        session.transmit("G28")
        session.transmit("G1 X1")
        with pytest.raises(TransportTimeout) as exc:
            session.transmit("G1 X2")
        assert exc.value.sequence_number == 3
        assert "N3" in str(exc.value)


class TestFinish:

    def test_sends_sync_and_waits_for_ok(self, session, transport):
        transport.queue("echo:busy: processing", "ok")
        session.finish()
        assert transport.writes == [b"M400\n"]
        assert transport.pending_replies == 0

    def test_sync_timeout(self):
        session = make_session([None])
        with pytest.raises(TransportTimeout) as exc:
            session.finish()
        assert exc.value.phase == "sync"

    def test_sync_is_not_numbered(self, session):
        session.finish()
        assert session.sequence_number == 1
        assert session.sent_count == 0


class TestProgress:

    def test_reports_every_interval(self, capsys):
        session = make_session()
        session.total_count = 50
        for _ in range(25):
            session.transmit("G1 X1")
        out = capsys.readouterr().out
        assert "Progress: 50% (25/50)" in out
        assert out.count("Progress:") == 1

    def test_debug_reports_every_command(self, capsys):
        session = make_session(debug=True)
        session.total_count = 4
        session.transmit("G28")
        out = capsys.readouterr().out
        assert "Progress: 25% (1/4)" in out
        assert ">>> N1 G28*18" in out
        assert "<<< ok" in out
