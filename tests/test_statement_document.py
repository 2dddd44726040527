import json

import pytest

from grantkit import (
    AnyPrincipal,
    Condition,
    Effect,
    InvalidStatement,
    PolicyDocument,
    PolicyKind,
    PolicyStatement,
    ResolutionError,
    ServicePrincipal,
)


def _stmt(sid: str | None = None, **kw) -> PolicyStatement:
    kw.setdefault("actions", ["s3:GetObject"])
    kw.setdefault("resources", ["arn:aws:s3:::bucket/*"])
    return PolicyStatement(sid=sid, **kw)


def test_statement_requires_actions_and_resources():
    with pytest.raises(InvalidStatement, match="at least one action"):
        PolicyStatement(actions=[], resources=["*"])
    with pytest.raises(InvalidStatement, match="at least one resource"):
        PolicyStatement(actions=["s3:GetObject"], resources=[])


def test_statement_rejects_actions_without_service_prefix():
    with pytest.raises(InvalidStatement, match="service namespace"):
        PolicyStatement(actions=["GetObject"], resources=["*"])


def test_statement_collapses_duplicates_in_order():
    stmt = PolicyStatement(
        actions=["sqs:SendMessage", "sqs:GetQueueUrl", "sqs:SendMessage"],
        resources=["b", "a", "b"],
    )
    assert stmt.actions == ("sqs:SendMessage", "sqs:GetQueueUrl")
    assert stmt.resources == ("b", "a")


def test_statement_rejects_duplicate_condition_keys():
    with pytest.raises(InvalidStatement, match="duplicate condition"):
        _stmt(
            conditions=[
                Condition("Bool", "aws:SecureTransport", ("false",)),
                Condition("Bool", "aws:SecureTransport", ("true",)),
            ]
        )


def test_condition_requires_values():
    with pytest.raises(InvalidStatement):
        Condition("StringEquals", "aws:PrincipalTag/team", ())


def test_statement_renders_iam_grammar():
    stmt = PolicyStatement(
        sid="DenyInsecure",
        effect=Effect.DENY,
        actions=["s3:*"],
        resources=["arn:aws:s3:::b", "arn:aws:s3:::b/*"],
        principals=[AnyPrincipal()],
        conditions=[Condition("Bool", "aws:SecureTransport", "false")],
    )
    assert stmt.to_statement_json() == {
        "Sid": "DenyInsecure",
        "Effect": "Deny",
        "Principal": {"AWS": "*"},
        "Action": "s3:*",
        "Resource": ["arn:aws:s3:::b", "arn:aws:s3:::b/*"],
        "Condition": {"Bool": {"aws:SecureTransport": "false"}},
    }


def test_statement_merges_principals_by_kind():
    stmt = _stmt(
        principals=[ServicePrincipal("sns.amazonaws.com"), ServicePrincipal("sqs.amazonaws.com")]
    )
    rendered = stmt.to_statement_json()
    assert rendered["Principal"] == {"Service": ["sns.amazonaws.com", "sqs.amazonaws.com"]}


def test_copy_returns_new_statement():
    stmt = _stmt()
    renamed = stmt.copy(sid="Named")
    assert renamed.sid == "Named"
    assert stmt.sid is None
    assert renamed.actions == stmt.actions
    with pytest.raises(TypeError):
        stmt.copy(bogus=1)


def test_document_keeps_identical_statements():
    doc = PolicyDocument()
    stmt = _stmt()
    doc.add_statements(stmt)
    doc.add_statements(stmt)
    assert len(doc) == 2


def test_document_serialization_is_repeatable():
    doc = PolicyDocument(statements=[_stmt(), _stmt(actions=["s3:PutObject"])])
    first = doc.to_serializable()
    second = doc.to_serializable()
    assert first == second
    assert first["Version"] == "2012-10-17"
    assert [s["Action"] for s in first["Statement"]] == ["s3:GetObject", "s3:PutObject"]


def test_document_assigns_sids_by_position():
    doc = PolicyDocument(assign_sids=True, kind=PolicyKind.RESOURCE)
    principal = ServicePrincipal("events.amazonaws.com")
    doc.add_statements(
        _stmt(sid="Explicit", principals=[principal]),
        _stmt(principals=[principal]),
        _stmt(principals=[principal]),
    )
    sids = [s["Sid"] for s in doc.to_serializable()["Statement"]]
    assert sids == ["Explicit", "1", "2"]


def test_identity_document_rejects_principals_without_partial_append():
    doc = PolicyDocument(kind=PolicyKind.IDENTITY)
    good = _stmt()
    bad = _stmt(principals=[AnyPrincipal()])
    with pytest.raises(InvalidStatement, match="identity-based policy"):
        doc.add_statements(good, bad)
    assert doc.is_empty


def test_resource_document_requires_principal():
    doc = PolicyDocument(kind=PolicyKind.RESOURCE)
    with pytest.raises(InvalidStatement, match="at least one IAM principal"):
        doc.add_statements(_stmt())


def test_frozen_document_rejects_statements():
    doc = PolicyDocument()
    doc.freeze()
    with pytest.raises(ResolutionError):
        doc.add_statements(_stmt())


def test_to_json_is_canonical():
    doc = PolicyDocument(statements=[_stmt()])
    assert json.loads(doc.to_json()) == doc.to_serializable()
    assert doc.to_json().startswith('{"Statement":')
    assert "\n" in doc.to_json(pretty=True)
