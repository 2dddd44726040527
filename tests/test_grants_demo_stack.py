import json

import pytest
from aws_cdk import App
from aws_cdk import assertions
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from stacks.grants_demo_stack import GrantsDemoStack

CONSUMER = "222222222222"


def _synth_template(monkeypatch, mode: str | None, consumer: str | None = CONSUMER) -> dict:
    monkeypatch.setenv("STAGE", "test")
    if mode is None:
        monkeypatch.delenv("DATA_ENCRYPTION_MODE", raising=False)
    else:
        monkeypatch.setenv("DATA_ENCRYPTION_MODE", mode)
    if consumer is None:
        monkeypatch.delenv("CONSUMER_ACCOUNT_ID", raising=False)
    else:
        monkeypatch.setenv("CONSUMER_ACCOUNT_ID", consumer)
    app = App()
    stack = GrantsDemoStack(app, "GrantsDemoTestStack")
    stack.resolve_policies()
    return assertions.Template.from_stack(
        stack, skip_cyclical_dependencies_check=True
    ).to_json()


def _find_resource(template: dict, resource_type: str, logical_id_contains: str) -> dict:
    for logical_id, resource in template["Resources"].items():
        if (
            resource.get("Type") == resource_type
            and logical_id_contains in logical_id
        ):
            return resource
    raise AssertionError(f"{resource_type} containing {logical_id_contains} not found")


def _resources_of_type(template: dict, resource_type: str) -> list[dict]:
    return [r for r in template["Resources"].values() if r.get("Type") == resource_type]


def _statements(resource: dict, *path: str) -> list[dict]:
    node = resource["Properties"]
    for part in path:
        node = node[part]
    return node["Statement"]


def _principal_values(statement: dict) -> list[str]:
    values: list[str] = []
    for v in (statement.get("Principal") or {}).values():
        values.extend(v if isinstance(v, list) else [v])
    return values


def test_default_mode_encrypts_with_customer_key(monkeypatch):
    template = _synth_template(monkeypatch, mode=None)

    assert len(_resources_of_type(template, "AWS::KMS::Key")) == 1
    queue = _find_resource(template, "AWS::SQS::Queue", "WorkQueue")
    assert "KmsMasterKeyId" in queue["Properties"]
    table = _find_resource(template, "AWS::DynamoDB::Table", "StateTable")
    assert table["Properties"]["SSESpecification"]["SSEType"] == "KMS"


def test_managed_mode_has_no_customer_key(monkeypatch):
    template = _synth_template(monkeypatch, mode="MANAGED")

    assert _resources_of_type(template, "AWS::KMS::Key") == []
    queue = _find_resource(template, "AWS::SQS::Queue", "WorkQueue")
    assert queue["Properties"]["SqsManagedSseEnabled"] is True


def test_invalid_encryption_mode_fails_fast(monkeypatch):
    monkeypatch.setenv("DATA_ENCRYPTION_MODE", "plaintext")
    with pytest.raises(ValueError, match="DATA_ENCRYPTION_MODE must be 'kms' or 'managed'"):
        GrantsDemoStack(App(), "BadModeStack")


def test_invalid_consumer_account_fails_fast(monkeypatch):
    monkeypatch.delenv("DATA_ENCRYPTION_MODE", raising=False)
    monkeypatch.setenv("CONSUMER_ACCOUNT_ID", "12345")
    with pytest.raises(ValueError, match="12-digit"):
        GrantsDemoStack(App(), "BadConsumerStack")


def test_same_account_role_grants_stay_on_role_policies(monkeypatch):
    template = _synth_template(monkeypatch, mode=None)

    worker = _find_resource(template, "AWS::IAM::Policy", "WorkerRoleDefaultPolicy")
    actions: list[str] = []
    for statement in _statements(worker, "PolicyDocument"):
        action = statement["Action"]
        actions.extend(action if isinstance(action, list) else [action])
    assert "sqs:ReceiveMessage" in actions
    assert "dynamodb:PutItem" in actions
    assert "kinesis:PutRecords" in actions
    assert "kms:Decrypt" in actions

    queue_policy = _find_resource(template, "AWS::SQS::QueuePolicy", "WorkQueue")
    queue_statements = _statements(queue_policy, "PolicyDocument")
    assert len(queue_statements) == 2
    assert queue_statements[0]["Effect"] == "Deny"
    assert queue_statements[1]["Principal"] == {"Service": "sns.amazonaws.com"}

    table = _find_resource(template, "AWS::DynamoDB::Table", "StateTable")
    assert "ResourcePolicy" not in table["Properties"]
    assert _resources_of_type(template, "AWS::Kinesis::ResourcePolicy") == []


def test_consumer_grants_land_on_resource_policies(monkeypatch):
    template = _synth_template(monkeypatch, mode=None)

    topic_policy = _find_resource(template, "AWS::SNS::TopicPolicy", "EventsTopic")
    assert [s["Sid"] for s in _statements(topic_policy, "PolicyDocument")] == [
        "AllowPublishThroughSSLOnly",
        "1",
        "2",
    ]

    bucket_policy = _find_resource(template, "AWS::S3::BucketPolicy", "ArtifactsBucket")
    bucket_statements = _statements(bucket_policy, "PolicyDocument")
    assert len(bucket_statements) == 3
    assert f":iam::{CONSUMER}:root" in json.dumps(bucket_statements[2]["Principal"])

    key = _find_resource(template, "AWS::KMS::Key", "DataKey")
    principals = [p for s in _statements(key, "KeyPolicy") for p in _principal_values(s)]
    assert "sns.amazonaws.com" in principals
    assert "codestar-notifications.amazonaws.com" in principals


def test_without_consumer_only_service_statements_remain(monkeypatch):
    template = _synth_template(monkeypatch, mode=None, consumer=None)

    topic_policy = _find_resource(template, "AWS::SNS::TopicPolicy", "EventsTopic")
    assert len(_statements(topic_policy, "PolicyDocument")) == 2
    bucket_policy = _find_resource(template, "AWS::S3::BucketPolicy", "ArtifactsBucket")
    assert len(_statements(bucket_policy, "PolicyDocument")) == 2


def test_notification_rule_targets_topic(monkeypatch):
    template = _synth_template(monkeypatch, mode="kms")
    rule = _find_resource(
        template, "AWS::CodeStarNotifications::NotificationRule", "PipelineFailures"
    )
    assert rule["Properties"]["Targets"][0]["TargetType"] == "SNS"
    assert rule["Properties"]["EventTypeIds"] == [
        "codepipeline-pipeline-pipeline-execution-failed"
    ]


def test_subscription_depends_on_queue_policy(monkeypatch):
    template = _synth_template(monkeypatch, mode=None)
    subscription = _resources_of_type(template, "AWS::SNS::Subscription")[0]
    assert any("WorkQueuePolicy" in d for d in subscription["DependsOn"])
