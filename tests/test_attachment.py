import sys
from pathlib import Path

import pytest
from aws_cdk import App, assertions

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from grantkit import (
    AccountPrincipal,
    PolicyStack,
    PolicyStatement,
    ResolutionError,
    ServicePrincipal,
)
from grantkit.iam import Role
from grantkit.s3 import Bucket
from grantkit.sqs import Queue


def _template(stack: PolicyStack) -> dict:
    stack.resolve_policies()
    return assertions.Template.from_stack(
        stack, skip_cyclical_dependencies_check=True
    ).to_json()


def _resources_of_type(template: dict, resource_type: str) -> list[dict]:
    return [r for r in template["Resources"].values() if r.get("Type") == resource_type]


def _service_statement(action: str, resource: str) -> PolicyStatement:
    return PolicyStatement(
        actions=[action],
        resources=[resource],
        principals=[ServicePrincipal("logging.s3.amazonaws.com")],
    )


def test_policy_object_is_created_once_and_keeps_order():
    stack = PolicyStack(App(), "AttachStack")
    bucket = Bucket(stack, "Bucket")
    assert bucket.policy is None
    assert not bucket.policy_attachment.attached

    results = [
        bucket.add_to_resource_policy(_service_statement(action, bucket.arn_for_objects("logs/*")))
        for action in ("s3:PutObject", "s3:GetObject", "s3:DeleteObject")
    ]

    assert all(r.statement_added for r in results)
    assert {r.policy_dependable.paths for r in results} == {("AttachStack/Bucket/Policy",)}

    template = _template(stack)
    policies = _resources_of_type(template, "AWS::S3::BucketPolicy")
    assert len(policies) == 1
    statements = policies[0]["Properties"]["PolicyDocument"]["Statement"]
    assert [s["Action"] for s in statements] == [
        "s3:PutObject",
        "s3:GetObject",
        "s3:DeleteObject",
    ]


def test_untouched_resource_emits_no_policy():
    stack = PolicyStack(App(), "QuietStack")
    Bucket(stack, "Bucket")
    Queue(stack, "Queue")
    template = _template(stack)
    assert _resources_of_type(template, "AWS::S3::BucketPolicy") == []
    assert _resources_of_type(template, "AWS::SQS::QueuePolicy") == []


def test_imported_resource_never_grows_a_policy():
    stack = PolicyStack(App(), "ImportStack")
    bucket = Bucket.from_bucket_name(stack, "Imported", "shared-artifacts")

    result = bucket.add_to_resource_policy(
        _service_statement("s3:PutObject", bucket.arn_for_objects("*"))
    )

    assert result.statement_added is False
    assert result.policy_dependable is None
    assert bucket.policy is None
    assert stack.resolve_policies() == {}


def test_empty_role_policy_is_not_emitted():
    stack = PolicyStack(App(), "RoleStack")
    role = Role(stack, "Role", assumed_by=ServicePrincipal("ecs-tasks.amazonaws.com"))
    assert role.default_policy is None

    template = _template(stack)
    assert _resources_of_type(template, "AWS::IAM::Policy") == []
    trust = _resources_of_type(template, "AWS::IAM::Role")[0]["Properties"][
        "AssumeRolePolicyDocument"
    ]
    assert trust["Statement"][0]["Principal"] == {"Service": ["ecs-tasks.amazonaws.com"]}


def test_policy_documents_are_keyed_by_policy_object_path():
    stack = PolicyStack(App(), "DocsStack")
    queue = Queue(stack, "Queue")
    role = Role(stack, "Role", assumed_by=ServicePrincipal("lambda.amazonaws.com"))
    queue.grant_send_messages(role)
    queue.grant_purge(AccountPrincipal("444444444444"))

    stack.resolve_policies()
    docs = stack.policy_documents()

    assert set(docs) == {"DocsStack/Role/DefaultPolicy", "DocsStack/Queue/Policy"}
    assert docs["DocsStack/Queue/Policy"]["Version"] == "2012-10-17"


def test_attachment_refuses_new_policy_objects_after_resolution():
    stack = PolicyStack(App(), "LateStack")
    bucket = Bucket(stack, "Bucket")
    stack.resolve_policies()
    with pytest.raises(ResolutionError, match="after policies were resolved"):
        bucket.add_to_resource_policy(
            _service_statement("s3:PutObject", bucket.arn_for_objects("*"))
        )


def test_existing_policy_object_is_frozen_after_resolution():
    stack = PolicyStack(App(), "FrozenStack")
    bucket = Bucket(stack, "Bucket", enforce_ssl=True)
    stack.resolve_policies()
    with pytest.raises(ResolutionError):
        bucket.add_to_resource_policy(
            _service_statement("s3:PutObject", bucket.arn_for_objects("*"))
        )
