import os
import re

import aws_cdk as cdk
from aws_cdk import CfnOutput
from constructs import Construct

from grantkit import AccountPrincipal, PolicyStack, ServicePrincipal
from grantkit.dynamodb import Attribute, AttributeType, StreamViewType, Table
from grantkit.iam import Role
from grantkit.kinesis import Stream
from grantkit.kms import Key
from grantkit.notifications import NotificationRule
from grantkit.s3 import Bucket
from grantkit.sns import SqsSubscription, Topic
from grantkit.sqs import Queue, QueueEncryption

_ACCOUNT_ID_RE = re.compile(r"^\d{12}$")


class GrantsDemoStack(PolicyStack):
    """A small event pipeline whose permissions are all declared through grants.

    Policies are not resolved here; call ``resolve_policies()`` once the stack
    (and anything that grants against it) has been declared.
    """

    def __init__(self, scope: Construct, construct_id: str, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        stage_name = os.getenv("STAGE", "prod").strip() or "prod"
        data_encryption_mode = os.getenv("DATA_ENCRYPTION_MODE", "kms").strip().lower()
        if data_encryption_mode not in {"kms", "managed"}:
            raise ValueError("DATA_ENCRYPTION_MODE must be 'kms' or 'managed' (case-insensitive)")
        consumer_account_id = (os.getenv("CONSUMER_ACCOUNT_ID") or "").strip()
        if consumer_account_id and not _ACCOUNT_ID_RE.match(consumer_account_id):
            raise ValueError("CONSUMER_ACCOUNT_ID must be a 12-digit AWS account id")

        self.data_key = None
        if data_encryption_mode == "kms":
            self.data_key = Key(
                self,
                "DataKey",
                description=f"grants demo data key ({stage_name})",
                enable_key_rotation=True,
            )

        self.work_queue = Queue(
            self,
            "WorkQueue",
            encryption=QueueEncryption.KMS if self.data_key else QueueEncryption.SQS_MANAGED,
            encryption_master_key=self.data_key,
            enforce_ssl=True,
        )
        self.events_topic = Topic(
            self,
            "EventsTopic",
            master_key=self.data_key,
            enforce_ssl=True,
        )
        self.events_topic.add_subscription(
            SqsSubscription(self.work_queue, raw_message_delivery=True)
        )
        self.artifacts_bucket = Bucket(
            self,
            "ArtifactsBucket",
            encryption_key=self.data_key,
            enforce_ssl=True,
            minimum_tls_version=1.2,
        )
        self.state_table = Table(
            self,
            "StateTable",
            partition_key=Attribute("pk", AttributeType.STRING),
            sort_key=Attribute("sk", AttributeType.STRING),
            stream=StreamViewType.NEW_AND_OLD_IMAGES,
            encryption_key=self.data_key,
        )
        self.state_table.add_global_secondary_index(
            "byStatus",
            partition_key=Attribute("status", AttributeType.STRING),
            sort_key=Attribute("updatedAt", AttributeType.NUMBER),
        )
        self.audit_stream = Stream(self, "AuditStream", encryption_key=self.data_key)

        self.worker_role = Role(
            self,
            "WorkerRole",
            assumed_by=ServicePrincipal("lambda.amazonaws.com"),
            description=f"grants demo worker ({stage_name})",
        )
        self.work_queue.grant_consume_messages(self.worker_role)
        self.state_table.grant_read_write_data(self.worker_role)
        self.state_table.grant_index(self.worker_role, "byStatus", "dynamodb:Query")
        self.artifacts_bucket.grant_read(self.worker_role)
        self.audit_stream.grant_write(self.worker_role)

        self.publisher_role = Role(
            self,
            "PublisherRole",
            assumed_by=ServicePrincipal("lambda.amazonaws.com"),
            description=f"grants demo publisher ({stage_name})",
        )
        self.events_topic.grant_publish(self.publisher_role)
        self.artifacts_bucket.grant_put(self.publisher_role, "incoming/*")
        self.state_table.grant_stream_read(self.publisher_role)

        if consumer_account_id:
            # Cross-account grants land on the resource policies.
            consumer = AccountPrincipal(consumer_account_id)
            self.artifacts_bucket.grant_read(consumer, "exports/*")
            self.events_topic.grant_subscribe(consumer)

        NotificationRule(
            self,
            "PipelineFailures",
            source_arn=self.format_arn(
                service="codepipeline", resource=f"grants-demo-{stage_name}"
            ),
            events=["codepipeline-pipeline-pipeline-execution-failed"],
            targets=[self.events_topic],
        )

        CfnOutput(self, "WorkQueueUrl", value=self.work_queue.queue_url)
        CfnOutput(self, "EventsTopicArn", value=self.events_topic.topic_arn)
        CfnOutput(self, "ArtifactsBucketName", value=self.artifacts_bucket.bucket_name)
        CfnOutput(self, "StateTableName", value=self.state_table.table_name)
        CfnOutput(self, "WorkerRoleArn", value=self.worker_role.role_arn)


def build_app() -> cdk.App:
    """Declare the demo app and resolve its policies; the caller synthesizes."""
    app = cdk.App()
    stack = GrantsDemoStack(
        app,
        os.getenv("CDK_STACK_NAME", "GrantsDemoStack"),
        env=cdk.Environment(
            account=os.getenv("CDK_DEFAULT_ACCOUNT"),
            region=os.getenv("CDK_DEFAULT_REGION", "us-east-2"),
        ),
    )
    stack.resolve_policies()
    return app
