"""Host and participant disconnects.

A host dropping mid-quiz pauses the session and freezes the clock of the
open question. If the host comes back within the grace period the question
resumes with the time it had left; otherwise the session is interrupted and
scheduled for removal. Participants who drop keep their place and score.
"""

from typing import Any, Dict

from .state import LiveSession, Participant, SessionStatus


class DisconnectSupervisor:

    def __init__(self, runtime, lifecycle):
        self.rt = runtime
        self.lifecycle = lifecycle

    # ---- host ----

    def host_disconnected(self, session: LiveSession) -> None:
        session.host_connection_id = None
        if session.status != SessionStatus.IN_PROGRESS:
            self.rt.logger.info(f"[host-disconnect] session={session.code} status={session.status} no-pause")
            return

        now = self.rt.clock()
        if session.timer is not None:
            session.timer.cancel()
            session.timer = None
        session.remaining_ms_when_paused = session.remaining_ms(now) if session.question_open else None
        session.paused_at = now
        session.transition(SessionStatus.PAUSED)

        self.rt.broadcaster.to_session(session.code, 'session.paused', {
            'message': 'Host disconnected. Waiting for reconnection...',
            'questionIndex': session.current_question_index,
            'gracePeriodSec': self.rt.settings.host_grace_period_sec,
        })
        self.rt.mirror.session_updated(session)

        if session.grace_timer is not None:
            session.grace_timer.cancel()
        code = session.code
        grace = self.rt.scheduler.schedule(
            'grace', self.rt.settings.host_grace_period_sec, lambda: self._on_grace_expired(code, grace)
        )
        session.grace_timer = grace
        self.rt.logger.warning(
            f"[host-disconnect] session={session.code} paused index={session.current_question_index} "
            f"remaining_ms={session.remaining_ms_when_paused}"
        )

    def host_reconnected(self, session: LiveSession, connection_id: str) -> None:
        session.host_connection_id = connection_id
        if session.status == SessionStatus.PAUSED:
            self.resume(session)
        self.rt.logger.info(f"[host-reconnect] session={session.code} status={session.status}")

    def resume(self, session: LiveSession) -> Dict[str, Any]:
        if session.grace_timer is not None:
            session.grace_timer.cancel()
            session.grace_timer = None
        now = self.rt.clock()
        session.transition(SessionStatus.IN_PROGRESS)

        remaining_ms = 0
        if session.question_open:
            # Resume from the frozen remainder; shift the start so latency excludes the pause
            remaining_ms = session.remaining_ms_when_paused or 0
            session.question_started_at = now - (session.time_limit_ms - remaining_ms) / 1000.0
            self.lifecycle.start_question_timer(session, remaining_ms)
        elif session.current_question_index >= 0 and session.is_last_question:
            self.lifecycle.schedule_completion(session)
        session.paused_at = None
        session.remaining_ms_when_paused = None

        payload = {
            'questionIndex': session.current_question_index,
            'questionOpen': session.question_open,
            'timeRemainingMs': remaining_ms,
        }
        self.rt.broadcaster.to_session(session.code, 'session.resumed', payload)
        self.rt.mirror.session_updated(session)
        self.rt.logger.info(
            f"[session-resume] session={session.code} index={session.current_question_index} remaining_ms={remaining_ms}"
        )
        return payload

    def _on_grace_expired(self, code: str, timer) -> None:
        session = self.rt.registry.get_session(code)
        if session is None:
            return
        with session.lock:
            # A later pause owns a newer grace timer
            if session.status != SessionStatus.PAUSED or session.grace_timer is not timer:
                self.rt.logger.info(f"[grace-abort] session={code} status={session.status}")
                return
            session.grace_timer = None
            session.question_open = False
            session.transition(SessionStatus.INTERRUPTED)
            session.completed_at = self.rt.clock()
            self.rt.mirror.session_updated(session)
            for participant in session.participants.values():
                self.rt.mirror.participant_saved(session, participant)
            self.rt.broadcaster.to_session(code, 'session.interrupted', {
                'message': 'Host did not reconnect. Session ended.',
            })
            self.rt.logger.warning(f"[session-interrupted] session={code}")
            self.lifecycle.schedule_removal(session, self.rt.settings.interrupted_retention_sec)

    # ---- participants ----

    def participant_disconnected(self, session: LiveSession, participant: Participant, reason: str = 'disconnect') -> None:
        participant.connected = False
        participant.connection_id = None
        participant.disconnected_at = self.rt.clock()
        self.rt.mirror.participant_saved(session, participant)
        event = 'participant.left' if reason == 'leave' else 'participant.disconnected'
        self.rt.broadcaster.to_host(session.code, event, {
            'participantId': participant.participant_id,
            'displayName': participant.display_name,
            'totalCount': session.participant_count,
            'totalConnected': session.connected_count,
        })
        self.rt.logger.info(
            f"[participant-{reason}] session={session.code} participant={participant.participant_id} "
            f"connected={session.connected_count}/{session.participant_count}"
        )
