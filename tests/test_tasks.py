from datetime import datetime, timedelta

from identity import tasks
from identity.models.token import RegistrationAttempt


def test_purge_registration_attempts(session_local, monkeypatch):
    session = session_local()
    session.add_all(
        [
            RegistrationAttempt(ip="1.1.1.1", attempted_at=datetime.utcnow() - timedelta(days=3)),
            RegistrationAttempt(ip="1.1.1.1", attempted_at=datetime.utcnow()),
        ]
    )
    session.commit()
    session.close()
    monkeypatch.setattr(tasks, "SessionLocal", session_local)

    assert tasks.purge_registration_attempts.apply().get() == 1

    session = session_local()
    assert session.query(RegistrationAttempt).count() == 1
    session.close()
