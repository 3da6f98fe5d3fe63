import tempfile
import unittest
from pathlib import Path
from unittest import mock

import httpx
from typer.testing import CliRunner

from src.common.errors import BackendCallError
from src.healer import cli as healer_cli
from src.healer import client as healer_client
from src.healer.client import (
    AnomalyType,
    CruiseControlHealer,
    HealerOptions,
    anomaly_types_from_config,
    cruise_control_url,
)
from src.model.cluster import load_cluster

CC_CONFIG = """
# self healing
self.healing.enabled=true
self.healing.disk.failure.enabled=false
self.healing.topic.anomaly.enabled = false
"""


class _MockedHttp:
    """Routes every ``httpx.Client`` built by the healer through a mock transport."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.requests = []
        self._real_client = httpx.Client

    def _handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status, payload = self.responses.pop(0)
        return httpx.Response(status, json=payload)

    def _factory(self, **kwargs):
        return self._real_client(transport=httpx.MockTransport(self._handler), **kwargs)

    def __enter__(self):
        self._patches = [
            mock.patch.object(healer_client.httpx, "Client", side_effect=self._factory),
            mock.patch.object(healer_client.time, "sleep"),
        ]
        for patch in self._patches:
            patch.start()
        return self

    def __exit__(self, *exc_info):
        for patch in reversed(self._patches):
            patch.stop()


class AnomalyConfigTests(unittest.TestCase):
    def test_types_follow_global_switch_and_overrides(self) -> None:
        self.assertEqual(
            anomaly_types_from_config(CC_CONFIG),
            [
                AnomalyType.BROKER_FAILURE,
                AnomalyType.GOAL_VIOLATION,
                AnomalyType.MAINTENANCE_EVENT,
                AnomalyType.METRIC_ANOMALY,
            ],
        )

    def test_nothing_enabled_by_default(self) -> None:
        self.assertEqual(anomaly_types_from_config(""), [])

    def test_url_for_cluster(self) -> None:
        cluster = load_cluster({"metadata": {"name": "kafka", "namespace": "kafka"}})
        self.assertEqual(
            cruise_control_url(cluster),
            "http://kafka-cruisecontrol-svc.kafka.svc.cluster.local:8090/kafkacruisecontrol",
        )


class CruiseControlHealerTests(unittest.TestCase):
    def _healer(self, retries: int = 0, config: str = CC_CONFIG) -> CruiseControlHealer:
        options = HealerOptions(server_url="http://cc:8090/kafkacruisecontrol/", retries=retries, seed=1)
        return CruiseControlHealer(options, config)

    def test_pause_disables_every_type(self) -> None:
        with _MockedHttp([(200, {"selfHealingEnabledBefore": {}})]) as http:
            response = self._healer().pause_self_healing()
        self.assertEqual(response, {"selfHealingEnabledBefore": {}})
        request = http.requests[0]
        self.assertEqual(request.method, "POST")
        self.assertEqual(request.url.path, "/kafkacruisecontrol/admin")
        self.assertNotIn("enable_self_healing_for", request.url.params)
        self.assertEqual(
            request.url.params["disable_self_healing_for"],
            ",".join(anomaly.value for anomaly in AnomalyType),
        )

    def test_resume_restores_configured_types(self) -> None:
        with _MockedHttp([(200, {})]) as http:
            self._healer().resume_self_healing()
        params = http.requests[0].url.params
        self.assertEqual(
            params["enable_self_healing_for"],
            "BROKER_FAILURE,GOAL_VIOLATION,MAINTENANCE_EVENT,METRIC_ANOMALY",
        )
        self.assertEqual(params["disable_self_healing_for"], "DISK_FAILURE,TOPIC_ANOMALY")
        self.assertEqual(params["json"], "true")

    def test_transient_failure_is_retried(self) -> None:
        with _MockedHttp([(503, {"error": "busy"}), (200, {"ok": True})]) as http:
            response = self._healer(retries=1).pause_self_healing()
        self.assertEqual(response, {"ok": True})
        self.assertEqual(len(http.requests), 2)

    def test_exhausted_retries_raise_backend_error(self) -> None:
        with _MockedHttp([(500, {}), (500, {})]):
            with self.assertRaises(BackendCallError) as ctx:
                self._healer(retries=1).pause_self_healing()
        self.assertEqual(ctx.exception.status, 500)

    def test_rejects_non_http_url(self) -> None:
        with self.assertRaises(ValueError):
            CruiseControlHealer(HealerOptions(server_url="cc:8090"))


class HealerCliTests(unittest.TestCase):
    def test_pause_prints_response(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            cluster_path = Path(tmpdir) / "kafkacluster.yaml"
            cluster_path.write_text("metadata:\n  name: kafka\n  namespace: kafka\n", encoding="utf-8")
            with _MockedHttp([(200, {"ok": True})]) as http:
                result = CliRunner().invoke(
                    healer_cli.app,
                    ["pause", "--cluster", str(cluster_path), "--url", "http://cc:8090/kafkacruisecontrol"],
                )
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn('"ok": true', result.stdout)
        self.assertEqual(http.requests[0].url.host, "cc")


if __name__ == "__main__":
    unittest.main()
