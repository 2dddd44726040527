import sys
from pathlib import Path

import pytest
from aws_cdk import App, Aws, Stack, assertions
from constructs import Construct

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from grantkit import (
    DependencyToken,
    PolicyDocument,
    PolicyStack,
    PolicyStatement,
    ResolutionError,
    ResolutionPhase,
    UnsupportedOperation,
)
from grantkit.kms import Key
from grantkit.principals import account_from_arn, same_account


def test_phase_runs_each_producer_once_in_order():
    phase = ResolutionPhase()
    calls: list[str] = []
    seen: list[object] = []

    def producer(name):
        def _produce():
            calls.append(name)
            return name.upper()

        return _produce

    phase.register("a", producer("a"), seen.append)
    phase.register("b", producer("b"), seen.append)
    assert phase.pending == 2

    phase.run()

    assert calls == ["a", "b"]
    assert seen == ["A", "B"]
    assert phase.pending == 0
    with pytest.raises(ResolutionError):
        phase.run()
    with pytest.raises(ResolutionError):
        phase.register("c", producer("c"), seen.append)


def test_phase_freezes_documents_and_records_them():
    phase = ResolutionPhase()
    doc = PolicyDocument(
        statements=[PolicyStatement(actions=["sqs:SendMessage"], resources=["*"])]
    )
    rendered: list[dict] = []
    phase.register_document("Stack/Policy", doc, rendered.append)

    with pytest.raises(ResolutionError, match="not been resolved"):
        phase.documents()

    out = phase.run()

    assert doc.frozen
    assert out["Stack/Policy"] == rendered[0]
    assert phase.documents() == out


def test_dependency_token_flattens_and_orders_constructs():
    stack = Stack(App(), "TokenStack")
    a = Construct(stack, "A")
    b = Construct(stack, "B")
    c = Construct(stack, "C")

    token = DependencyToken(a) + DependencyToken(a, b, None)
    assert token.paths == ("TokenStack/A", "TokenStack/B")
    assert bool(DependencyToken()) is False

    token.apply_to(c)
    assert {d.node.path for d in c.node.dependencies} == {"TokenStack/A", "TokenStack/B"}


def test_policy_stack_of_requires_policy_stack():
    plain = Stack(App(), "PlainStack")
    with pytest.raises(UnsupportedOperation, match="inside a PolicyStack"):
        Key(plain, "Key")


def test_synth_fails_when_policies_were_never_resolved():
    stack = PolicyStack(App(), "UnresolvedStack")
    Key(stack, "Key")
    with pytest.raises(Exception, match="resolve_policies"):
        assertions.Template.from_stack(stack, skip_cyclical_dependencies_check=True)


def test_resolve_policies_twice_is_an_error():
    stack = PolicyStack(App(), "TwiceStack")
    Key(stack, "Key")
    stack.resolve_policies()
    with pytest.raises(ResolutionError, match="already resolved"):
        stack.resolve_policies()


def test_account_helpers_treat_tokens_conservatively():
    assert account_from_arn("arn:aws:iam::123456789012:role/worker") == "123456789012"
    assert account_from_arn("arn:aws:s3:::bucket") is None
    assert account_from_arn(f"arn:aws:iam::{Aws.ACCOUNT_ID}:root") is None

    assert same_account("123456789012", "123456789012")
    assert not same_account("123456789012", "210987654321")
    assert same_account(Aws.ACCOUNT_ID, Aws.ACCOUNT_ID)
    assert not same_account(Aws.ACCOUNT_ID, "123456789012")
    assert not same_account(None, "123456789012")
