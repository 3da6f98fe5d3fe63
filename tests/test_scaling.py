import unittest

from src.model.cluster import load_cluster
from src.scaling import apply_plan, plan_ephemeral_brokers


def _cluster(*ids: int):
    return load_cluster(
        {
            "metadata": {"name": "kafka", "namespace": "kafka"},
            "spec": {"brokers": [{"id": broker_id, "brokerConfigGroup": "default"} for broker_id in ids]},
        }
    )


EXTENSION = """
brokers:
  - id: 1000
    brokerConfigGroup: default
  - id: 1002
    brokerConfigGroup: default
"""


class EphemeralBrokerPlanTests(unittest.TestCase):
    def test_adds_new_and_drops_vanished_ephemeral_brokers(self) -> None:
        plan = plan_ephemeral_brokers(_cluster(0, 1, 1000, 1001), EXTENSION)
        self.assertEqual([broker.id for broker in plan.add], [1002])
        self.assertEqual(plan.remove, [1001])

    def test_regular_brokers_are_never_removed(self) -> None:
        plan = plan_ephemeral_brokers(_cluster(0, 1), "brokers: []")
        self.assertTrue(plan.empty)

    def test_malformed_extension_yields_empty_plan(self) -> None:
        with self.assertLogs("src.scaling.ephemeral", level="ERROR"):
            plan = plan_ephemeral_brokers(_cluster(0, 1000), "brokers: [")
        self.assertTrue(plan.empty)

    def test_apply_plan_returns_updated_copy(self) -> None:
        cluster = _cluster(0, 1, 1000, 1001)
        updated = apply_plan(cluster, plan_ephemeral_brokers(cluster, EXTENSION))
        self.assertEqual(updated.spec.broker_ids(), [0, 1, 1000, 1002])
        self.assertEqual(cluster.spec.broker_ids(), [0, 1, 1000, 1001])


if __name__ == "__main__":
    unittest.main()
