from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Iterable

from aws_cdk import CfnResource
from constructs import Construct

from .attachment import ensure_open
from .capabilities import Encryptable, ResourcePolicyCapable
from .errors import InvalidGrant, MissingCapability
from .grant import Grant, GrantResolver
from .key_grants import KeyGrantPropagator, unique_actions
from .kms import _KeyBase
from .policy import PropertyPolicy, ResourcePolicy
from .principals import Principal, account_from_arn
from .resource import GrantableResource, region_from_arn

logger = logging.getLogger("grantkit.dynamodb")

READ_DATA_ACTIONS = (
    "dynamodb:BatchGetItem",
    "dynamodb:GetRecords",
    "dynamodb:GetShardIterator",
    "dynamodb:Query",
    "dynamodb:GetItem",
    "dynamodb:Scan",
    "dynamodb:ConditionCheckItem",
)
READ_DATA_ACTIONS_STREAM_ONLY = ("dynamodb:GetRecords", "dynamodb:GetShardIterator")
WRITE_DATA_ACTIONS = (
    "dynamodb:BatchWriteItem",
    "dynamodb:PutItem",
    "dynamodb:UpdateItem",
    "dynamodb:DeleteItem",
)
READ_STREAM_DATA_ACTIONS = (
    "dynamodb:DescribeStream",
    "dynamodb:GetRecords",
    "dynamodb:GetShardIterator",
)
DESCRIBE_TABLE = "dynamodb:DescribeTable"

KEY_READ_ACTIONS = ("kms:Decrypt", "kms:DescribeKey")
KEY_WRITE_ACTIONS = ("kms:Encrypt", "kms:ReEncrypt*", "kms:GenerateDataKey*")


class AttributeType(str, enum.Enum):
    STRING = "S"
    NUMBER = "N"
    BINARY = "B"


class StreamViewType(str, enum.Enum):
    NEW_IMAGE = "NEW_IMAGE"
    OLD_IMAGE = "OLD_IMAGE"
    NEW_AND_OLD_IMAGES = "NEW_AND_OLD_IMAGES"
    KEYS_ONLY = "KEYS_ONLY"


class ProjectionType(str, enum.Enum):
    KEYS_ONLY = "KEYS_ONLY"
    INCLUDE = "INCLUDE"
    ALL = "ALL"


@dataclass(frozen=True)
class Attribute:
    name: str
    type: AttributeType = AttributeType.STRING


@dataclass(frozen=True)
class GlobalSecondaryIndex:
    index_name: str
    partition_key: Attribute
    sort_key: Attribute | None = None
    projection_type: ProjectionType = ProjectionType.ALL

    def to_cfn(self) -> dict[str, Any]:
        schema = [{"AttributeName": self.partition_key.name, "KeyType": "HASH"}]
        if self.sort_key is not None:
            schema.append({"AttributeName": self.sort_key.name, "KeyType": "RANGE"})
        return {
            "IndexName": self.index_name,
            "KeySchema": schema,
            "Projection": {"ProjectionType": self.projection_type.value},
        }


class _TableBase(GrantableResource, ResourcePolicyCapable, Encryptable):
    table_arn: str
    table_name: str
    table_stream_arn: str | None

    def __init__(self, scope: Construct, construct_id: str, **kwargs: Any) -> None:
        super().__init__(scope, construct_id, **kwargs)
        self._encryption_key: _KeyBase | None = None
        self._index_names: list[str] = []

    @property
    def encryption_key(self) -> _KeyBase | None:
        return self._encryption_key

    @property
    def has_index(self) -> bool:
        return bool(self._index_names)

    def _table_arns(self) -> list[str]:
        arns = [self.table_arn]
        if self.has_index:
            arns.append(f"{self.table_arn}/index/*")
        return arns

    def _require_stream(self) -> str:
        if not self.table_stream_arn:
            raise MissingCapability(
                f"DynamoDB Streams must be enabled on the table {self.node.path}"
            )
        return self.table_stream_arn

    def grant(self, grantee: Principal, *actions: str) -> Grant:
        """Grant ``actions`` on the table and its indexes.

        A table policy cannot name its own ARN and does not accept stream
        actions, so the resource-side statement uses ``*`` without them.
        """
        if not actions:
            raise InvalidGrant("a table grant needs at least one action")
        return GrantResolver.add_to_principal_or_resource(
            grantee,
            actions,
            self._table_arns(),
            self,
            resource_self_arns=["*"],
            resource_actions=[a for a in actions if a not in READ_DATA_ACTIONS_STREAM_ONLY],
        )

    def _combined_grant(
        self, grantee: Principal, table_actions: Iterable[str], key_actions: Iterable[str]
    ) -> Grant:
        grant = self.grant(grantee, *table_actions)
        KeyGrantPropagator.propagate(grant, self, key_actions)
        return grant

    def grant_read_data(self, grantee: Principal) -> Grant:
        return self._combined_grant(
            grantee, READ_DATA_ACTIONS + (DESCRIBE_TABLE,), KEY_READ_ACTIONS
        )

    def grant_write_data(self, grantee: Principal) -> Grant:
        return self._combined_grant(
            grantee, WRITE_DATA_ACTIONS + (DESCRIBE_TABLE,), KEY_WRITE_ACTIONS
        )

    def grant_read_write_data(self, grantee: Principal) -> Grant:
        return self._combined_grant(
            grantee,
            READ_DATA_ACTIONS + WRITE_DATA_ACTIONS + (DESCRIBE_TABLE,),
            unique_actions(KEY_READ_ACTIONS, KEY_WRITE_ACTIONS),
        )

    def grant_full_access(self, grantee: Principal) -> Grant:
        return self._combined_grant(
            grantee, ("dynamodb:*",), unique_actions(KEY_READ_ACTIONS, KEY_WRITE_ACTIONS)
        )

    def grant_stream(self, grantee: Principal, *actions: str) -> Grant:
        stream_arn = self._require_stream()
        return GrantResolver.add_to_principal(grantee, actions, [stream_arn], self)

    def grant_table_list_streams(self, grantee: Principal) -> Grant:
        self._require_stream()
        return GrantResolver.add_to_principal(grantee, ["dynamodb:ListStreams"], ["*"], self)

    def grant_stream_read(self, grantee: Principal) -> Grant:
        stream_arn = self._require_stream()
        self.grant_table_list_streams(grantee)
        grant = GrantResolver.add_to_principal(
            grantee, READ_STREAM_DATA_ACTIONS, [stream_arn], self
        )
        KeyGrantPropagator.propagate(grant, self, KEY_READ_ACTIONS)
        return grant

    def grant_index(self, grantee: Principal, index_name: str, *actions: str) -> Grant:
        if index_name not in self._index_names:
            raise MissingCapability(f"No global secondary index with name {index_name}")
        return GrantResolver.add_to_principal(
            grantee, actions, [f"{self.table_arn}/index/{index_name}"], self
        )

    @staticmethod
    def grant_list_streams(grantee: Principal) -> Grant:
        return GrantResolver.add_to_principal(grantee, ["dynamodb:ListStreams"], ["*"])


class Table(_TableBase):
    """A DynamoDB table emitted as ``AWS::DynamoDB::Table`` (on-demand billing).

    Attribute definitions and indexes are rendered during resolution, so
    indexes added after construction are still picked up. The table policy
    lives in the ``ResourcePolicy`` property of the table itself.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        partition_key: Attribute,
        sort_key: Attribute | None = None,
        stream: StreamViewType | None = None,
        encryption_key: _KeyBase | None = None,
        table_name: str | None = None,
    ) -> None:
        super().__init__(scope, construct_id)
        self._attributes: dict[str, Attribute] = {}
        self._indexes: list[GlobalSecondaryIndex] = []
        self._declare(partition_key)
        key_schema = [{"AttributeName": partition_key.name, "KeyType": "HASH"}]
        if sort_key is not None:
            self._declare(sort_key)
            key_schema.append({"AttributeName": sort_key.name, "KeyType": "RANGE"})

        properties: dict[str, Any] = {
            "KeySchema": key_schema,
            "BillingMode": "PAY_PER_REQUEST",
        }
        if stream is not None:
            properties["StreamSpecification"] = {"StreamViewType": StreamViewType(stream).value}
        if encryption_key is not None:
            properties["SSESpecification"] = {
                "SSEEnabled": True,
                "SSEType": "KMS",
                "KMSMasterKeyId": encryption_key.key_arn,
            }
        if table_name:
            properties["TableName"] = table_name
        self._encryption_key = encryption_key
        self.resource = CfnResource(
            self, "Resource", type="AWS::DynamoDB::Table", properties=properties
        )
        self.table_arn = self.resource.get_att("Arn").to_string()
        self.table_name = self.resource.ref
        self.table_stream_arn = (
            self.resource.get_att("StreamArn").to_string() if stream is not None else None
        )
        self.stack.resolution.register(f"{self.node.path}#schema", self._schema, self._apply_schema)

    @property
    def policy(self) -> ResourcePolicy | None:
        return self.policy_attachment.policy

    def _create_resource_policy(self) -> ResourcePolicy:
        return PropertyPolicy(
            self, "Policy", target=self.resource, property_path="ResourcePolicy.PolicyDocument"
        )

    def _declare(self, attribute: Attribute) -> None:
        existing = self._attributes.get(attribute.name)
        if existing is not None and existing.type != attribute.type:
            raise ValueError(
                f"Unable to specify {attribute.name} as {attribute.type.value} because it was "
                f"already defined as {existing.type.value}"
            )
        self._attributes[attribute.name] = attribute

    def add_global_secondary_index(
        self,
        index_name: str,
        *,
        partition_key: Attribute,
        sort_key: Attribute | None = None,
        projection_type: ProjectionType = ProjectionType.ALL,
    ) -> GlobalSecondaryIndex:
        ensure_open(self, "indexes")
        if index_name in self._index_names:
            raise ValueError(f"a duplicate index name, {index_name}, is not allowed")
        self._declare(partition_key)
        if sort_key is not None:
            self._declare(sort_key)
        index = GlobalSecondaryIndex(index_name, partition_key, sort_key, projection_type)
        self._indexes.append(index)
        self._index_names.append(index_name)
        return index

    def _schema(self) -> dict[str, Any]:
        schema: dict[str, Any] = {
            "AttributeDefinitions": [
                {"AttributeName": a.name, "AttributeType": a.type.value}
                for a in self._attributes.values()
            ]
        }
        if self._indexes:
            schema["GlobalSecondaryIndexes"] = [i.to_cfn() for i in self._indexes]
        return schema

    def _apply_schema(self, schema: dict[str, Any]) -> None:
        for name, value in schema.items():
            self.resource.add_property_override(name, value)

    @staticmethod
    def from_table_arn(scope: Construct, construct_id: str, table_arn: str) -> _TableBase:
        return Table.from_table_attributes(scope, construct_id, table_arn=table_arn)

    @staticmethod
    def from_table_attributes(
        scope: Construct,
        construct_id: str,
        *,
        table_arn: str | None = None,
        table_name: str | None = None,
        table_stream_arn: str | None = None,
        encryption_key: _KeyBase | None = None,
        global_indexes: Iterable[str] = (),
    ) -> _TableBase:
        """Reference a table defined elsewhere by ARN or by name (exactly one)."""
        if bool(table_arn) == bool(table_name):
            raise ValueError("exactly one of table_arn or table_name must be provided")
        return _ImportedTable(
            scope,
            construct_id,
            table_arn=table_arn,
            table_name=table_name,
            table_stream_arn=table_stream_arn,
            encryption_key=encryption_key,
            global_indexes=global_indexes,
        )


class _ImportedTable(_TableBase):
    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        table_arn: str | None,
        table_name: str | None,
        table_stream_arn: str | None,
        encryption_key: _KeyBase | None,
        global_indexes: Iterable[str],
    ) -> None:
        account = account_from_arn(table_arn) if table_arn else None
        region = region_from_arn(table_arn) if table_arn else None
        super().__init__(
            scope, construct_id, auto_create_policy=False, account=account, region=region
        )
        if table_arn:
            self.table_arn = table_arn
            self.table_name = table_arn.rsplit("/", 1)[-1]
        else:
            self.table_name = table_name
            self.table_arn = self.stack.format_arn(
                service="dynamodb", resource="table", resource_name=table_name
            )
        self.table_stream_arn = table_stream_arn
        self._encryption_key = encryption_key
        self._index_names = list(global_indexes)
