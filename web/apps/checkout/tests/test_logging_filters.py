import json
import logging

from pythonjsonlogger.json import JsonFormatter

from gateway.context import bind_order, bind_request
from gateway.logging_filters import RequestIdFilter


def make_record(**extra):
    record = logging.LogRecord("checkout.test", logging.INFO, __file__, 1, "order created", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_placeholders_outside_a_checkout():
    record = make_record()
    assert RequestIdFilter().filter(record) is True
    assert (record.request_id, record.order_id) == ("-", "-")


def test_context_ids_are_attached():
    with bind_request("req-1"), bind_order("ord-1"):
        record = make_record()
        RequestIdFilter().filter(record)
    assert (record.request_id, record.order_id) == ("req-1", "ord-1")


def test_explicit_extra_wins_over_context():
    with bind_order("ord-ctx"):
        record = make_record(order_id="ord-extra")
        RequestIdFilter().filter(record)
    assert record.order_id == "ord-extra"


def test_bind_request_generates_and_resets():
    with bind_request() as rid:
        record = make_record()
        RequestIdFilter().filter(record)
    assert record.request_id == rid and rid != "-"
    after = make_record()
    RequestIdFilter().filter(after)
    assert after.request_id == "-"


def test_json_output_carries_correlation_fields():
    formatter = JsonFormatter("%(levelname)s %(name)s %(message)s %(request_id)s %(order_id)s")
    with bind_request("req-9"):
        record = make_record(total="10.00")
        RequestIdFilter().filter(record)
    payload = json.loads(formatter.format(record))
    assert payload["request_id"] == "req-9"
    assert payload["order_id"] == "-"
    assert payload["total"] == "10.00"
