import sys
from pathlib import Path

import aws_cdk as cdk
from aws_cdk import App, assertions

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from grantkit import AccountPrincipal, KeyGrantPropagator, PolicyStack, ServicePrincipal
from grantkit.iam import Role
from grantkit.key_grants import unique_actions
from grantkit.kms import Key
from grantkit.s3 import Bucket
from grantkit.sqs import CONSUME_ACTIONS, Queue, QueueEncryption


def _stack(name: str, account: str | None = None) -> PolicyStack:
    env = cdk.Environment(account=account, region="us-east-2") if account else None
    return PolicyStack(App(), name, env=env)


def _find_resource(template: dict, resource_type: str, logical_id_contains: str) -> dict:
    for logical_id, resource in template["Resources"].items():
        if (
            resource.get("Type") == resource_type
            and logical_id_contains in logical_id
        ):
            return resource
    raise AssertionError(f"{resource_type} containing {logical_id_contains} not found")


def test_unique_actions_preserves_first_occurrence():
    assert unique_actions(("kms:Decrypt", "kms:DescribeKey"), ("kms:Encrypt", "kms:Decrypt")) == (
        "kms:Decrypt",
        "kms:DescribeKey",
        "kms:Encrypt",
    )


def test_encrypted_queue_consume_also_grants_decrypt():
    stack = _stack("EncryptedStack")
    key = Key(stack, "Key")
    queue = Queue(stack, "Queue", encryption_master_key=key)
    role = Role(stack, "Worker", assumed_by=ServicePrincipal("lambda.amazonaws.com"))

    queue.grant_consume_messages(role)
    stack.resolve_policies()
    template = assertions.Template.from_stack(
        stack, skip_cyclical_dependencies_check=True
    ).to_json()

    assert queue.policy is None
    policy = _find_resource(template, "AWS::IAM::Policy", "WorkerDefaultPolicy")
    statements = policy["Properties"]["PolicyDocument"]["Statement"]
    assert len(statements) == 2
    assert statements[0]["Action"] == list(CONSUME_ACTIONS)
    assert statements[1]["Action"] == "kms:Decrypt"
    # Same-account key grant stays off the key policy.
    key_policy = _find_resource(template, "AWS::KMS::Key", "Key")["Properties"]["KeyPolicy"]
    assert len(key_policy["Statement"]) == 1


def test_unencrypted_queue_issues_no_key_grant():
    stack = _stack("PlainStack")
    queue = Queue(stack, "Queue")
    role = Role(stack, "Worker", assumed_by=ServicePrincipal("lambda.amazonaws.com"))

    queue.grant_consume_messages(role)
    stack.resolve_policies()

    docs = stack.policy_documents()
    assert len(docs["PlainStack/Worker/DefaultPolicy"]["Statement"]) == 1


def test_kms_encryption_without_key_creates_one_under_the_queue():
    stack = _stack("AutoKeyStack")
    queue = Queue(stack, "Queue", encryption=QueueEncryption.KMS)
    assert queue.encryption_master_key is not None
    assert queue.encryption_master_key.node.path == "AutoKeyStack/Queue/Key"


def test_imported_queue_with_key_still_grants_on_key():
    stack = _stack("ImportedStack", account="111111111111")
    key = Key(stack, "Key")
    queue = Queue.from_queue_arn(
        stack,
        "Imported",
        "arn:aws:sqs:us-east-2:222222222222:external",
        encryption_master_key=key,
    )
    role = Role(stack, "Worker", assumed_by=ServicePrincipal("lambda.amazonaws.com"))

    queue.grant_send_messages(role)
    stack.resolve_policies()
    docs = stack.policy_documents()

    statements = docs["ImportedStack/Worker/DefaultPolicy"]["Statement"]
    assert len(statements) == 2
    assert statements[1]["Action"] == [
        "kms:Decrypt",
        "kms:Encrypt",
        "kms:ReEncrypt*",
        "kms:GenerateDataKey*",
    ]


def test_cross_account_key_grant_lands_on_key_policy_with_wildcard_resource():
    stack = _stack("CrossStack", account="111111111111")
    key = Key(stack, "Key")
    bucket = Bucket(stack, "Bucket", encryption_key=key)

    bucket.grant_read(AccountPrincipal("222222222222"), "exports/*")
    stack.resolve_policies()
    docs = stack.policy_documents()

    key_statement = docs["CrossStack/Key/Policy"]["Statement"][-1]
    assert key_statement["Action"] == ["kms:Decrypt", "kms:DescribeKey"]
    assert key_statement["Resource"] == "*"
    bucket_statement = docs["CrossStack/Bucket/Policy"]["Statement"][0]
    assert bucket_statement["Action"] == ["s3:GetObject*", "s3:GetBucket*", "s3:List*"]


def test_key_grant_is_issued_even_when_primary_records_nothing():
    stack = _stack("IndependentStack", account="111111111111")
    key = Key(stack, "Key")
    bucket = Bucket.from_bucket_name(stack, "Imported", "shared", encryption_key=key)
    grantee = AccountPrincipal("222222222222")

    grant = bucket.grant_read(grantee)

    assert grant.statement_added is False
    assert len(key.policy.document) == 2


def test_propagate_returns_none_without_key():
    stack = _stack("NoKeyStack")
    queue = Queue(stack, "Queue")
    role = Role(stack, "Worker", assumed_by=ServicePrincipal("lambda.amazonaws.com"))
    grant = queue.grant_purge(role)
    assert KeyGrantPropagator.propagate(grant, queue, ("kms:Decrypt",)) is None
