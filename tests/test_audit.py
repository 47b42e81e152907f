from app.models import AuditLog
from app.services.audit import log_action, log_to_dict, recent_logs


def test_log_action_uppercases(db):
    assert log_action(db, "a@lma.test", "criar fda", "FDA-2025-001") is True
    entry = db.query(AuditLog).one()
    assert entry.action == "CRIAR FDA"
    assert log_to_dict(entry)["details"] == "FDA-2025-001"


def test_failure_is_swallowed(db, monkeypatch):
    def broken_commit():
        raise RuntimeError("sem conexão")

    monkeypatch.setattr(db, "commit", broken_commit)
    assert log_action(db, "a@lma.test", "EXCLUIR ITEM") is False


def test_recent_logs_newest_first_with_limit(db):
    for i in range(5):
        log_action(db, "a@lma.test", f"ACAO {i}")
    entries = recent_logs(db, limit=3)
    assert [e.action for e in entries] == ["ACAO 4", "ACAO 3", "ACAO 2"]
