"""Tests for the token minting script."""

from jose import jwt

from notification_server.core.settings import settings
from notification_server.scripts.tokens import main


def test_main_prints_verifiable_token(capsys) -> None:
    token = main(["user-1", "--minutes", "5"])

    assert capsys.readouterr().out.strip() == token
    claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    assert claims["sub"] == "user-1"
