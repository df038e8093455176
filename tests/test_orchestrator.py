"""Tests for the forwarding orchestrator against in-memory namespaces."""

from unittest import TestCase
from unittest.mock import MagicMock, patch

from bus_relay.activity_log import ActivityLog
from bus_relay.config import Settings
from bus_relay.entity_model_dto import IgnorePatterns
from bus_relay.orchestrator import ForwardingOrchestrator
from fake_broker import InMemoryNamespace


class OrchestratorTestCase(TestCase):
    def setUp(self):
        self.source = InMemoryNamespace()
        self.destination = InMemoryNamespace()
        self.logger = MagicMock()

    def make_orchestrator(self, ignore_patterns: IgnorePatterns | None = None, batch_size: int = 10):
        return ForwardingOrchestrator(
            self.source,
            self.destination,
            ignore_patterns,
            batch_size=batch_size,
            wait_timeout=0.1,
            activity_log=ActivityLog(self.logger),
        )

    def logged(self) -> list[str]:
        return [call.args[0] for call in self.logger.info.call_args_list]

    def errors(self) -> list[str]:
        return [call.args[0] for call in self.logger.error.call_args_list]


class TestProcessQueues(OrchestratorTestCase):
    """Queue scenarios."""

    def test_message_is_moved_to_existing_destination_queue(self):
        self.source.add_queue("orders").add("m1")
        self.destination.add_queue("orders")

        self.make_orchestrator().run()

        self.assertEqual(self.destination.queues["orders"].ids(), ["m1"])
        self.assertEqual(len(self.source.queues["orders"]), 0)
        self.assertEqual(self.logged()[0], "Running")
        self.assertEqual(self.logged()[-1], "Finished running")

    def test_queue_missing_at_destination_is_left_alone(self):
        self.source.add_queue("orders").add("m1")

        self.make_orchestrator().run()

        self.assertNotIn("orders", self.destination.queues)
        self.assertEqual(self.source.queues["orders"].ids(), ["m1"])
        self.assertIn("Skipping queue, which does not exist in destination: [orders]", self.logged())

    def test_ignored_queue_is_left_alone(self):
        self.source.add_queue("orders").add("m1")
        self.destination.add_queue("orders")

        self.make_orchestrator(IgnorePatterns.parse("ORD")).run()

        self.assertEqual(self.source.queues["orders"].ids(), ["m1"])
        self.assertEqual(len(self.destination.queues["orders"]), 0)
        self.assertEqual(self.source.opened, [])
        self.assertIn("Ignoring queue: [orders]", self.logged())

    def test_one_message_per_session_is_forwarded(self):
        source_queue = self.source.add_queue("orders", requires_session=True)
        source_queue.add("m1", session_id="s1")
        source_queue.add("m2", session_id="s2")
        self.destination.add_queue("orders", requires_session=True)

        self.make_orchestrator().run()

        forwarded = self.destination.queues["orders"].messages
        self.assertEqual(sorted((m.session_id, m.message_id) for m in forwarded), [("s1", "m1"), ("s2", "m2")])
        self.assertEqual(len(source_queue), 0)

    def test_failing_queue_does_not_stop_the_others(self):
        self.source.add_queue("broken").add("m1")
        self.source.add_queue("orders").add("m2")
        self.destination.add_queue("broken")
        self.destination.add_queue("orders")
        self.destination.failing_paths.add("broken")

        self.make_orchestrator().run()

        self.assertEqual(self.source.queues["broken"].ids(), ["m1"])
        self.assertEqual(self.destination.queues["orders"].ids(), ["m2"])
        self.assertTrue(self.errors()[0].startswith("\n\n! Exception processing [broken] queue: access to broken denied"))
        self.assertEqual(self.logged()[-1], "Finished running")

    def test_endpoints_are_closed_after_failure(self):
        self.source.add_queue("orders").add("m1")
        self.destination.add_queue("orders")
        orchestrator = self.make_orchestrator()
        with patch.object(orchestrator.queue_forwarder, "forward", side_effect=RuntimeError("boom")):
            orchestrator.run()

        self.assertEqual(len(self.source.opened) + len(self.destination.opened), 2)
        self.assertTrue(all(endpoint.closed for endpoint in self.source.opened + self.destination.opened))
        self.assertEqual(self.source.queues["orders"].ids(), ["m1"])


class TestProcessTopics(OrchestratorTestCase):
    """Topic and subscription scenarios."""

    def setUp(self):
        super().setUp()
        self.source_topic = self.source.add_topic("events")
        self.first = self.source_topic.add_subscription("first")
        self.second = self.source_topic.add_subscription("second")
        self.destination_topic = self.destination.add_topic("events")

    def test_fan_out_is_published_once(self):
        self.destination_topic.add_subscription("first")
        self.source_topic.publish("m1")

        self.make_orchestrator().run()

        self.assertEqual([message.message_id for message in self.destination_topic.sent], ["m1"])
        self.assertEqual(len(self.first), 0)
        self.assertEqual(len(self.second), 0)

    def test_topic_without_destination_subscriptions_is_still_drained(self):
        self.source_topic.publish("m1")

        self.make_orchestrator().run()

        self.assertEqual(len(self.destination_topic.sent), 1)
        self.assertEqual(len(self.first) + len(self.second), 0)

    def test_topic_missing_at_destination_is_not_drained(self):
        del self.destination.topics["events"]
        self.source_topic.publish("m1")

        self.make_orchestrator().run()

        self.assertEqual(self.first.ids(), ["m1"])
        self.assertEqual(self.second.ids(), ["m1"])
        self.assertIn("Skipping topic, which does not exist in destination: [events]", self.logged())

    def test_ignored_subscription_keeps_its_messages(self):
        self.source_topic.publish("m1")

        self.make_orchestrator(IgnorePatterns.parse(subscriptions="^first$")).run()

        self.assertEqual(self.first.ids(), ["m1"])
        self.assertEqual(len(self.second), 0)
        self.assertEqual(len(self.destination_topic.sent), 1)
        self.assertIn("Ignoring subscription: [events].[first]", self.logged())

    def test_ignored_topic_is_not_listed(self):
        self.source_topic.publish("m1")

        self.make_orchestrator(IgnorePatterns.parse(topics="EVENT")).run()

        self.assertEqual(self.first.ids(), ["m1"])
        self.assertIn("Ignoring topic: [events]", self.logged())

    def test_failing_subscription_does_not_stop_the_next(self):
        self.source_topic.publish("m1")
        self.source.failing_paths.add("events/first")

        self.make_orchestrator().run()

        self.assertEqual(self.first.ids(), ["m1"])
        self.assertEqual(len(self.second), 0)
        self.assertEqual(len(self.destination_topic.sent), 1)
        self.assertIn("! Exception processing [events].[first] subscription", self.errors()[0])

    def test_dedup_does_not_span_runs(self):
        self.source_topic.publish("m1")
        orchestrator = self.make_orchestrator()
        orchestrator.run()
        self.source_topic.publish("m1")
        orchestrator.run()

        self.assertEqual(len(self.destination_topic.sent), 2)

    def test_queues_are_processed_before_topics(self):
        self.source.add_queue("orders").add("q1")
        self.destination.add_queue("orders")
        self.source_topic.publish("t1")

        self.make_orchestrator().run()

        lines = self.logged()
        self.assertLess(lines.index("1 queue(s) found"), lines.index("1 topic(s) found"))


class TestRun(OrchestratorTestCase):
    """Run-level behaviour."""

    def test_listing_failure_is_logged_not_raised(self):
        self.source.fail_listing = True

        self.make_orchestrator().run()

        self.assertEqual(self.errors(), ["\n\n! Exception: namespace unavailable\n\n"])
        self.assertNotIn("Finished running", self.logged())

    def test_batch_size_must_be_positive(self):
        with self.assertRaises(ValueError):
            self.make_orchestrator(batch_size=0)

    def test_close_closes_both_namespaces(self):
        self.make_orchestrator().close()
        self.assertTrue(self.source.closed)
        self.assertTrue(self.destination.closed)

    def test_plan_reports_actions(self):
        self.source.add_queue("orders")
        self.source.add_queue("audit")
        self.source.add_queue("legacy")
        self.destination.add_queue("orders")
        self.destination.add_queue("audit")
        source_topic = self.source.add_topic("events")
        source_topic.add_subscription("first")
        source_topic.add_subscription("debug")
        self.source.add_topic("gone")
        self.destination.add_topic("events")

        plan = self.make_orchestrator(IgnorePatterns.parse("aud", subscriptions="debug")).plan()

        self.assertEqual(
            [(entry["entity"], entry["action"]) for entry in plan],
            [
                ("[orders]", "forward"),
                ("[audit]", "ignore"),
                ("[legacy]", "missing"),
                ("[events]", "forward"),
                ("[events].[first]", "forward"),
                ("[events].[debug]", "ignore"),
                ("[gone]", "missing"),
            ],
        )
        self.assertEqual(self.source.opened, [])

    @patch("bus_relay.broker_servicebus.ServiceBusNamespace")
    def test_from_settings_builds_service_bus_namespaces(self, mock_namespace):
        settings = Settings(
            source_connection_string="Endpoint=sb://src/",
            destination_connection_string="Endpoint=sb://dst/",
            ignore_queues="a,b",
            messages_to_handle_at_once=5,
            server_wait_time=0.5,
        )

        orchestrator = ForwardingOrchestrator.from_settings(settings)

        mock_namespace.assert_any_call("Endpoint=sb://src/")
        mock_namespace.assert_any_call("Endpoint=sb://dst/")
        self.assertEqual(orchestrator.ignore_patterns.queues, ("a", "b"))
        self.assertEqual(orchestrator.queue_forwarder.batch_size, 5)
        self.assertEqual(orchestrator.subscription_forwarder.wait_timeout, 0.5)
