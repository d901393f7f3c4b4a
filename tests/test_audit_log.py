import datetime

from onionmon.utils.logging import open_audit_log, traffic_log_path


def test_audit_log_path_is_dated(tmp_path):
    day = datetime.date(2024, 3, 9)
    audit, path = open_audit_log(str(tmp_path), day)
    audit.close()
    assert path == traffic_log_path(str(tmp_path), day)
    assert path.endswith("traffic_2024-03-09.log")


def test_two_audit_logs_write_separate_files(tmp_path):
    a, path_a = open_audit_log(str(tmp_path / "a"))
    b, path_b = open_audit_log(str(tmp_path / "b"))
    try:
        assert a.logger is not b.logger
        a.write("only-in-a")
        b.write("only-in-b")
    finally:
        a.close()
        b.close()
    text_a = open(path_a, encoding="utf-8").read()
    text_b = open(path_b, encoding="utf-8").read()
    assert "only-in-a" in text_a
    assert "only-in-b" not in text_a
    assert "only-in-b" in text_b
    assert "only-in-a" not in text_b


def test_closed_audit_log_detaches_from_new_one(tmp_path):
    first, path_first = open_audit_log(str(tmp_path / "first"))
    first.write("before")
    first.close()
    second, _ = open_audit_log(str(tmp_path / "second"))
    second.write("after")
    second.close()
    text = open(path_first, encoding="utf-8").read()
    assert "before" in text
    assert "after" not in text
