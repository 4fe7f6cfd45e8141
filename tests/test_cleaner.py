from datetime import datetime, timedelta, timezone

from campusride.src.cleaner import removeExpiredTokens
from campusride.src.db import UserToken, sessionMaker


def test_remove_expired_tokens(client, student):
    session = sessionMaker()
    try:
        session.add(
            UserToken(
                user_id=student["id"],
                expires_in=60,
                expires_at=datetime.now(timezone.utc) - timedelta(minutes=1),
            )
        )
        session.commit()

        assert removeExpiredTokens(session) == 1
        assert session.query(UserToken).count() == 1
    finally:
        session.close()

    response = client.get("/api/user", headers=student["headers"])
    assert response.status_code == 200
