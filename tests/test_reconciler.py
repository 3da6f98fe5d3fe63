import unittest
from unittest import mock

from fake_cluster import (
    InMemoryClusterClient,
    broker,
    contour_cluster,
    contour_override,
    envoy_cluster,
)

from src.common.errors import BackendCallError, CompilationError
from src.common.labels import CLUSTER_REGISTRY_OWNERSHIP_ANNOTATION, labels_for_contour, merge_labels
from src.reconciler import ExternalAccessReconciler

INGRESS1 = contour_override("kafka.cluster.local", "broker-%d.kafka.cluster.local")
INGRESS2 = contour_override("kafka2.cluster.local", "broker-%d.kafka2.cluster.local")
OVERRIDES = {"ingress1": INGRESS1, "ingress2": INGRESS2}

GLOBAL_ENVOY = {
    ("ConfigMap", "kafka", "envoy-config-kafka"),
    ("Deployment", "kafka", "envoy-kafka"),
    ("Service", "kafka", "envoy-loadbalancer-kafka"),
}


def _contour_labels(listener: str):
    return merge_labels({"app": "kafka"}, labels_for_contour("kafka", listener))


class ContourReconcileTests(unittest.TestCase):
    def setUp(self) -> None:
        self.client = InMemoryClusterClient()
        self.reconciler = ExternalAccessReconciler(self.client)

    def test_first_pass_applies_with_owner_reference(self) -> None:
        cluster = contour_cluster(
            [broker(0, mapping=["ingress1"]), broker(1, mapping=["ingress1"])], OVERRIDES
        )
        result = self.reconciler.reconcile(cluster)
        self.assertTrue(result.ok)
        self.assertEqual(len(result.applied), 6)
        self.assertEqual(
            self.client.names("Service"),
            ["contour-svc-external-ingress1-kafka", "kafka-0-external", "kafka-1-external"],
        )
        owner = self.client.manifest("HTTPProxy", "kafka.cluster.local")["metadata"]["ownerReferences"]
        self.assertEqual(owner[0]["kind"], "KafkaCluster")
        self.assertEqual(owner[0]["uid"], "uid-kafka")

    def test_second_pass_is_idempotent(self) -> None:
        cluster = contour_cluster(
            [broker(0, mapping=["ingress1"]), broker(1, mapping=["ingress1"])], OVERRIDES
        )
        self.reconciler.reconcile(cluster)
        before = dict(self.client.objects)
        result = self.reconciler.reconcile(cluster)
        self.assertEqual(result.deleted, [])
        self.assertEqual(self.client.objects, before)

    def test_moving_brokers_between_overrides_prunes_leftovers(self) -> None:
        self.reconciler.reconcile(
            contour_cluster([broker(0, mapping=["ingress1"]), broker(1, mapping=["ingress1"])], OVERRIDES)
        )

        result = self.reconciler.reconcile(
            contour_cluster([broker(0, mapping=["ingress1"]), broker(1, mapping=["ingress2"])], OVERRIDES)
        )
        self.assertEqual(result.deleted, [("HTTPProxy", "kafka", "broker-1.kafka.cluster.local")])
        self.assertIn("broker-1.kafka2.cluster.local", self.client.names("HTTPProxy"))
        self.assertIn("contour-svc-external-ingress2-kafka", self.client.names("Service"))

        self.reconciler.reconcile(
            contour_cluster([broker(0, mapping=["ingress2"]), broker(1, mapping=["ingress2"])], OVERRIDES)
        )
        self.assertEqual(
            self.client.names("HTTPProxy"),
            [
                "broker-0.kafka2.cluster.local",
                "broker-1.kafka2.cluster.local",
                "kafka2.cluster.local",
            ],
        )
        self.assertEqual(
            self.client.names("Service"),
            ["contour-svc-external-ingress2-kafka", "kafka-0-external", "kafka-1-external"],
        )

    def test_leftovers_stay_without_cleanup_flag(self) -> None:
        self.reconciler.reconcile(
            contour_cluster(
                [broker(0, mapping=["ingress1"])], OVERRIDES, remove_unused=False
            )
        )
        result = self.reconciler.reconcile(
            contour_cluster([broker(0, mapping=["ingress2"])], OVERRIDES, remove_unused=False)
        )
        self.assertEqual(result.deleted, [])
        self.assertIn("kafka.cluster.local", self.client.names("HTTPProxy"))

    def test_prune_skips_externally_managed_and_terminating(self) -> None:
        self.client.seed(
            "v1",
            "Service",
            "contour-svc-external-remote-kafka",
            "kafka",
            _contour_labels("external"),
            annotations={CLUSTER_REGISTRY_OWNERSHIP_ANNOTATION: "other-cluster"},
        )
        self.client.seed(
            "projectcontour.io/v1",
            "HTTPProxy",
            "old.kafka.cluster.local",
            "kafka",
            _contour_labels("external"),
            deletion_timestamp="2024-01-01T00:00:00Z",
        )
        self.client.seed(
            "projectcontour.io/v1", "HTTPProxy", "stale.kafka.cluster.local", "kafka", _contour_labels("external")
        )
        result = self.reconciler.reconcile(contour_cluster([broker(0, mapping=["ingress1"])], OVERRIDES))
        self.assertEqual(result.deleted, [("HTTPProxy", "kafka", "stale.kafka.cluster.local")])
        self.assertEqual(result.protected, [("Service", "kafka", "contour-svc-external-remote-kafka")])
        self.assertIn("contour-svc-external-remote-kafka", self.client.names("Service"))
        self.assertIn("old.kafka.cluster.local", self.client.names("HTTPProxy"))

    def test_objects_of_removed_listener_are_pruned(self) -> None:
        self.client.seed("v1", "Service", "kafka-0-gone", "kafka", _contour_labels("gone"))
        result = self.reconciler.reconcile(contour_cluster([broker(0, mapping=["ingress1"])], OVERRIDES))
        self.assertIn(("Service", "kafka", "kafka-0-gone"), result.deleted)

    def test_failed_override_keeps_previous_generation(self) -> None:
        self.reconciler.reconcile(
            contour_cluster([broker(0, mapping=["ingress1"]), broker(1, mapping=["ingress2"])], OVERRIDES)
        )
        broken = {
            "ingress1": contour_override("", "broker-%d.kafka.cluster.local"),
            "ingress2": INGRESS2,
        }
        result = self.reconciler.reconcile(
            contour_cluster([broker(0, mapping=["ingress1"]), broker(1, mapping=["ingress2"])], broken)
        )
        self.assertFalse(result.ok)
        self.assertEqual(result.deleted, [("HTTPProxy", "kafka", "kafka.cluster.local")])
        self.assertIn("contour-svc-external-ingress1-kafka", self.client.names("Service"))
        self.assertIn("broker-0.kafka.cluster.local", self.client.names("HTTPProxy"))

    def test_unresolvable_listener_prunes_nothing(self) -> None:
        self.reconciler.reconcile(contour_cluster([broker(0, mapping=["ingress1"])], OVERRIDES))
        before = set(self.client.objects)
        result = self.reconciler.reconcile(
            contour_cluster([broker(0, mapping=["ingress1"])], OVERRIDES, default="missing")
        )
        self.assertFalse(result.ok)
        self.assertEqual(result.deleted, [])
        self.assertEqual(set(self.client.objects), before)

    def test_backend_failure_aborts_pass(self) -> None:
        self.client.fail_apply.add("kafka.cluster.local")
        with self.assertRaises(BackendCallError):
            self.reconciler.reconcile(contour_cluster([broker(0, mapping=["ingress1"])], OVERRIDES))


class EnvoyReconcileTests(unittest.TestCase):
    def setUp(self) -> None:
        self.client = InMemoryClusterClient()
        self.reconciler = ExternalAccessReconciler(self.client)

    def test_toggling_per_group_converges(self) -> None:
        self.reconciler.reconcile(envoy_cluster(per_group=False))
        self.assertEqual(set(self.client.objects), GLOBAL_ENVOY)

        result = self.reconciler.reconcile(envoy_cluster(per_group=True))
        self.assertEqual(set(result.deleted), GLOBAL_ENVOY)
        self.assertEqual(
            self.client.names("Deployment"), ["envoy-default-kafka", "envoy-fast-kafka"]
        )

        self.reconciler.reconcile(envoy_cluster(per_group=False))
        self.assertEqual(set(self.client.objects), GLOBAL_ENVOY)

    def test_bring_your_own_lb_removes_load_balancer(self) -> None:
        self.reconciler.reconcile(envoy_cluster())
        result = self.reconciler.reconcile(envoy_cluster(bring_your_own_lb=True))
        self.assertEqual(result.deleted, [("Service", "kafka", "envoy-loadbalancer-kafka")])
        self.assertEqual(self.client.names("Deployment"), ["envoy-kafka"])

    def test_failed_scope_keeps_previous_objects(self) -> None:
        self.reconciler.reconcile(envoy_cluster())
        with mock.patch(
            "src.envoy.compiler.render_envoy_config", side_effect=CompilationError("boom")
        ):
            result = self.reconciler.reconcile(envoy_cluster())
        self.assertFalse(result.ok)
        self.assertEqual(result.deleted, [])
        self.assertEqual(set(self.client.objects), GLOBAL_ENVOY)

    def test_switching_to_contour_leaves_envoy_without_cleanup(self) -> None:
        self.reconciler.reconcile(envoy_cluster())
        cluster = envoy_cluster()
        spec = cluster.spec.model_copy(update={"ingress_controller": "contour"})
        result = self.reconciler.reconcile(cluster.model_copy(update={"spec": spec}))
        self.assertEqual(result.deleted, [])
        self.assertEqual(set(self.client.objects), GLOBAL_ENVOY)

        spec = spec.model_copy(update={"remove_unused_ingress_resources": True})
        result = self.reconciler.reconcile(cluster.model_copy(update={"spec": spec}))
        self.assertEqual(set(result.deleted), GLOBAL_ENVOY)
        self.assertEqual(self.client.objects, {})

    def test_delete_failure_is_raised(self) -> None:
        self.reconciler.reconcile(envoy_cluster())
        self.client.fail_delete.add("envoy-loadbalancer-kafka")
        with self.assertRaises(BackendCallError):
            self.reconciler.reconcile(envoy_cluster(bring_your_own_lb=True))


if __name__ == "__main__":
    unittest.main()
