"""SQS queue handler."""

from typing import Dict, Optional

from pydantic import ConfigDict, Field, model_validator

from converge.handlers.aws.base import AWSResourceHandler, strip_owner
from converge.handlers.base import DescribeResult, ResourceConfig, ResourceState
from converge.utils.errors import AlreadyExistsError, NotFoundError
from converge.utils.logging import get_logger

logger = get_logger(__name__)

# Config field -> SQS queue attribute
QUEUE_ATTRIBUTES = {
    'visibility_timeout': 'VisibilityTimeout',
    'message_retention_period': 'MessageRetentionPeriod',
    'delay_seconds': 'DelaySeconds',
    'receive_message_wait_time_seconds': 'ReceiveMessageWaitTimeSeconds',
}


class SQSQueueConfig(ResourceConfig):
    """Desired SQS queue."""

    queue_name: str = Field(..., min_length=1, max_length=80)
    fifo_queue: bool = False
    visibility_timeout: int = Field(30, ge=0, le=43200)
    message_retention_period: int = Field(345600, ge=60, le=1209600)
    delay_seconds: int = Field(0, ge=0, le=900)
    receive_message_wait_time_seconds: int = Field(0, ge=0, le=20)
    tags: Dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def validate_fifo_name(self):
        """FIFO queue names must carry the .fifo suffix, standard ones must not."""
        if self.fifo_queue != self.queue_name.endswith('.fifo'):
            raise ValueError("queue_name must end with '.fifo' exactly when fifo_queue is true")
        return self


class SQSQueueState(ResourceState, SQSQueueConfig):
    """Recorded SQS queue: identifiers plus the applied config."""

    model_config = ConfigDict(extra="ignore")

    queue_url: str
    queue_arn: str


class SQSQueueHandler(AWSResourceHandler):
    """Handler for SQS queues."""

    type_name = "aws:SQS.Queue"
    service_name = "sqs"
    config_model = SQSQueueConfig
    state_model = SQSQueueState
    immutable_fields = ("queue_name", "fifo_queue")
    mutable_fields = tuple(QUEUE_ATTRIBUTES) + ("tags",)
    not_found_codes = frozenset({
        'AWS.SimpleQueueService.NonExistentQueue',
        'QueueDoesNotExist',
    })
    already_exists_codes = frozenset({
        'QueueAlreadyExists',
        'QueueNameExists',
    })

    def describe(self, ctx, state: SQSQueueState) -> DescribeResult:
        try:
            attributes = self._call(
                ctx, 'get_queue_attributes', QueueUrl=state.queue_url, AttributeNames=['All']
            )['Attributes']
            tags = self._call(ctx, 'list_queue_tags', QueueUrl=state.queue_url).get('Tags', {})
        except NotFoundError:
            return DescribeResult.gone()

        live = self._state_from(state.queue_url, state.queue_name, attributes, tags)
        return DescribeResult(
            exists=True,
            live_config=SQSQueueConfig(**live.model_dump(include=set(SQSQueueConfig.model_fields))),
        )

    def create(self, ctx, config: SQSQueueConfig) -> SQSQueueState:
        attributes = {
            attribute: str(getattr(config, name)) for name, attribute in QUEUE_ATTRIBUTES.items()
        }
        if config.fifo_queue:
            attributes['FifoQueue'] = 'true'

        response = self._call(
            ctx,
            'create_queue',
            QueueName=config.queue_name,
            Attributes=attributes,
            tags=self._with_owner(ctx, config.tags),
        )
        queue_url = response['QueueUrl']

        # CreateQueue returns an existing queue with identical attributes
        tags = self._call(ctx, 'list_queue_tags', QueueUrl=queue_url).get('Tags', {})
        if not self._owned_by(ctx, tags):
            raise AlreadyExistsError(
                f"Queue {config.queue_name} already exists and is not owned by {ctx.owner}"
            )

        queue_arn = self._call(
            ctx, 'get_queue_attributes', QueueUrl=queue_url, AttributeNames=['QueueArn']
        )['Attributes']['QueueArn']
        logger.info(f"Created SQS queue {config.queue_name}")

        return SQSQueueState(queue_url=queue_url, queue_arn=queue_arn, **config.model_dump())

    def update(self, ctx, config: SQSQueueConfig, state: SQSQueueState) -> SQSQueueState:
        self._call(
            ctx,
            'set_queue_attributes',
            QueueUrl=state.queue_url,
            Attributes={
                attribute: str(getattr(config, name))
                for name, attribute in QUEUE_ATTRIBUTES.items()
            },
        )

        current = self._call(ctx, 'list_queue_tags', QueueUrl=state.queue_url).get('Tags', {})
        removed = sorted(set(strip_owner(current)) - set(config.tags))
        if removed:
            self._call(ctx, 'untag_queue', QueueUrl=state.queue_url, TagKeys=removed)
        self._call(ctx, 'tag_queue', QueueUrl=state.queue_url, Tags=self._with_owner(ctx, config.tags))

        return state.model_copy(update={name: getattr(config, name) for name in self.mutable_fields})

    def delete(self, ctx, state: SQSQueueState) -> None:
        try:
            self._call(ctx, 'delete_queue', QueueUrl=state.queue_url)
        except NotFoundError:
            logger.debug(f"SQS queue {state.queue_name} already deleted")

    def adopt(self, ctx, config: SQSQueueConfig) -> Optional[SQSQueueState]:
        queue_url = self._call(ctx, 'get_queue_url', QueueName=config.queue_name)['QueueUrl']
        tags = self._call(ctx, 'list_queue_tags', QueueUrl=queue_url).get('Tags', {})
        if not self._owned_by(ctx, tags):
            return None

        attributes = self._call(
            ctx, 'get_queue_attributes', QueueUrl=queue_url, AttributeNames=['All']
        )['Attributes']
        return self._state_from(queue_url, config.queue_name, attributes, tags)

    @staticmethod
    def _state_from(
        queue_url: str, queue_name: str, attributes: Dict[str, str], tags: Dict[str, str]
    ) -> SQSQueueState:
        return SQSQueueState(
            queue_url=queue_url,
            queue_arn=attributes.get('QueueArn', ''),
            queue_name=queue_name,
            fifo_queue=attributes.get('FifoQueue', 'false') == 'true',
            visibility_timeout=int(attributes.get('VisibilityTimeout', 30)),
            message_retention_period=int(attributes.get('MessageRetentionPeriod', 345600)),
            delay_seconds=int(attributes.get('DelaySeconds', 0)),
            receive_message_wait_time_seconds=int(
                attributes.get('ReceiveMessageWaitTimeSeconds', 0)
            ),
            tags=strip_owner(tags),
        )
