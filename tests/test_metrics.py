import pytest
from prometheus_client.parser import text_string_to_metric_families

from api_service.observability import metrics as metrics_module
from api_service.observability.metrics import ServiceMetrics, UnregisteredMetricError

from conftest import FAIL, FAST


def _core_samples(body: str) -> dict:
    wanted = ("db_query_duration_seconds", "api_errors", "http_request_duration_seconds")
    return {
        (sample.name, tuple(sorted(sample.labels.items()))): sample.value
        for family in text_string_to_metric_families(body)
        if family.name in wanted
        for sample in family.samples
    }


def test_observe_records_sample(metrics) -> None:
    metrics.observe("db_query_duration_seconds", {"operation": "get_data", "success": "true"}, 0.25)

    labels = {"operation": "get_data", "success": "true"}
    assert metrics.registry.get_sample_value("db_query_duration_seconds_count", labels) == 1
    assert metrics.registry.get_sample_value("db_query_duration_seconds_sum", labels) == pytest.approx(0.25)


def test_observe_rejects_negative_duration(metrics) -> None:
    with pytest.raises(ValueError):
        metrics.observe("db_query_duration_seconds", {"operation": "get_data", "success": "true"}, -0.1)


def test_unknown_instruments_are_programming_errors(metrics) -> None:
    with pytest.raises(UnregisteredMetricError):
        metrics.observe("nope_seconds", {"operation": "get_data"}, 1.0)
    with pytest.raises(UnregisteredMetricError):
        metrics.increment("nope_total", {"endpoint": "/api/data"})


def test_wrong_label_names_are_rejected(metrics) -> None:
    with pytest.raises(ValueError):
        metrics.increment("api_errors_total", {"endpoint": "/api/data"})


def test_increment_creates_label_set_on_first_use(metrics) -> None:
    labels = {"endpoint": "/other", "status_code": "503"}
    assert metrics.registry.get_sample_value("api_errors_total", labels) is None

    metrics.increment("api_errors_total", labels)
    metrics.increment("api_errors_total", labels)

    assert metrics.registry.get_sample_value("api_errors_total", labels) == 2


def test_error_label_set_starts_at_zero(metrics) -> None:
    labels = {"endpoint": "/api/data", "status_code": "500"}
    assert metrics.registry.get_sample_value("api_errors_total", labels) == 0


def test_construction_validates_instrument_set(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(metrics_module, "REQUIRED_COUNTERS", ("api_errors_total", "missing_total"))

    with pytest.raises(UnregisteredMetricError, match="missing_total"):
        ServiceMetrics()


def test_registries_are_independent() -> None:
    first = ServiceMetrics(runtime_collectors=False)
    second = ServiceMetrics(runtime_collectors=False)

    first.increment("api_errors_total", {"endpoint": "/api/data", "status_code": "500"})

    labels = {"endpoint": "/api/data", "status_code": "500"}
    assert first.registry.get_sample_value("api_errors_total", labels) == 1
    assert second.registry.get_sample_value("api_errors_total", labels) == 0


def test_render_includes_runtime_collectors(metrics) -> None:
    body = metrics.render().decode("utf-8")
    assert "python_info" in body
    assert "# TYPE db_query_duration_seconds histogram" in body
    assert "# HELP api_errors_total Total number of API errors" in body


async def test_metrics_endpoint_serves_exposition_format(make_app, client_for, fake_sleep) -> None:
    app = make_app(latency_draw=FAST, failure_draw=FAIL, sleep=fake_sleep)

    async with client_for(app) as client:
        await client.get("/api/data")
        resp = await client.get("/metrics")

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/plain")

    sample_names = {
        sample.name for family in text_string_to_metric_families(resp.text) for sample in family.samples
    }
    assert "db_query_duration_seconds_count" in sample_names
    assert "api_errors_total" in sample_names
    assert "http_request_duration_seconds_count" in sample_names


async def test_metrics_endpoint_is_idempotent(make_app, client_for, fake_sleep) -> None:
    app = make_app(latency_draw=FAST, failure_draw=FAIL, sleep=fake_sleep)

    async with client_for(app) as client:
        await client.get("/api/data")
        first = await client.get("/metrics")
        second = await client.get("/metrics")

    assert _core_samples(first.text)
    assert _core_samples(first.text) == _core_samples(second.text)


async def test_scrapes_are_not_recorded_as_http_requests(make_app, client_for, metrics, fake_sleep) -> None:
    app = make_app(latency_draw=FAST, sleep=fake_sleep)

    async with client_for(app) as client:
        await client.get("/api/data")
        await client.get("/metrics")

    data_labels = {"method": "GET", "path": "/api/data", "status_code": "200", "project": "observability-demo"}
    scrape_labels = {**data_labels, "path": "/metrics"}
    assert metrics.registry.get_sample_value("http_request_duration_seconds_count", data_labels) == 1
    assert metrics.registry.get_sample_value("http_request_duration_seconds_count", scrape_labels) is None
