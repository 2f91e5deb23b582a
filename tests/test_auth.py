from __future__ import annotations

from donorflow.auth import authenticate, hash_password, verify_password
from donorflow.store import DonorFlowStore


def _build_store(tmp_path) -> DonorFlowStore:  # type: ignore[no-untyped-def]
    store = DonorFlowStore(tmp_path / "donorflow_auth.db")
    store.init_db()
    return store


def test_hash_password_is_salted_and_verifiable() -> None:
    first = hash_password("secret1")
    second = hash_password("secret1")

    assert first != second
    assert verify_password(first, "secret1")
    assert not verify_password(first, "secret2")


def test_authenticate_checks_username_and_password(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)
    store.add_user(username="admin", password="secret1")

    user = authenticate(store, " admin ", "secret1")
    assert user is not None
    assert user["username"] == "admin"

    assert authenticate(store, "admin", "wrong-password") is None
    assert authenticate(store, "nobody", "secret1") is None
