"""Tests for the reporting sink."""

import logging
import threading

from structlog.testing import capture_logs

from jobwarden.sink import ReportingSink, SinkRecord


def collecting_sink():
    records = []
    return ReportingSink(records.append, run_id="r1"), records


def test_record_line_prefix():
    assert SinkRecord(logging.DEBUG, "Job Log:", "hello").line == "Job Log: hello"
    assert SinkRecord(logging.INFO, None, "hello").line == "hello"


def test_lines_from_many_threads_are_all_delivered_once():
    sink, records = collecting_sink()
    sink.start()

    def produce(n):
        for i in range(100):
            sink.write(logging.INFO, f"t{n}", str(i))

    threads = [threading.Thread(target=produce, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    sink.close()

    assert len(records) == 800
    for n in range(8):
        # Per-producer order is preserved
        assert [r.text for r in records if r.prefix == f"t{n}"] == [str(i) for i in range(100)]


def test_close_flushes_and_is_idempotent():
    sink, records = collecting_sink()

    with sink:
        sink.info("one")
        sink.warning("two")
    sink.close()

    assert [(r.severity, r.text) for r in records] == [(logging.INFO, "one"), (logging.WARNING, "two")]


def test_close_without_start_flushes_inline():
    sink, records = collecting_sink()
    sink.info("queued")

    sink.close()

    assert [r.text for r in records] == ["queued"]


def test_writes_after_close_are_dropped():
    sink, records = collecting_sink()
    sink.start()
    sink.close()

    sink.info("late")

    assert records == []


def test_write_racing_close_is_delivered_or_dropped():
    sink, records = collecting_sink()
    sink.start()
    go = threading.Event()

    def produce(n):
        go.wait()
        for i in range(200):
            sink.write(logging.INFO, f"t{n}", str(i))

    threads = [threading.Thread(target=produce, args=(n,)) for n in range(8)]
    with capture_logs() as logs:
        for t in threads:
            t.start()
        go.set()
        sink.close()
        for t in threads:
            t.join()

    dropped = [log for log in logs if log["event"] == "sink_write_after_close"]
    assert len(records) + len(dropped) == 1600
    for n in range(8):
        # Accepted lines are exactly the ones written before close
        texts = [r.text for r in records if r.prefix == f"t{n}"]
        assert texts == [str(i) for i in range(len(texts))]


def test_emit_failure_does_not_stop_consumer():
    delivered = []

    def emit(record):
        if record.text == "bad":
            raise RuntimeError("boom")
        delivered.append(record.text)

    with ReportingSink(emit) as sink:
        sink.info("bad")
        sink.info("good")

    assert delivered == ["good"]


def test_default_emit_logs_with_severity_and_run_id():
    with capture_logs() as logs:
        with ReportingSink(run_id="r1") as sink:
            sink.write(logging.DEBUG, "Job Log:", "starting")
            sink.info("Job 'x' created")

    lines = [(entry["log_level"], entry["event"], entry["run_id"]) for entry in logs]
    assert lines == [("debug", "Job Log: starting", "r1"), ("info", "Job 'x' created", "r1")]
