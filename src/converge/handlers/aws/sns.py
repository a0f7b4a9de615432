"""SNS topic handler."""

from typing import Dict

from pydantic import ConfigDict, Field, model_validator

from converge.handlers.aws.base import AWSResourceHandler, strip_owner, tag_dict, tag_list
from converge.handlers.base import DescribeResult, ResourceConfig, ResourceState
from converge.utils.errors import AlreadyExistsError, NotFoundError
from converge.utils.logging import get_logger

logger = get_logger(__name__)


class SNSTopicConfig(ResourceConfig):
    """Desired SNS topic."""

    name: str = Field(..., min_length=1, max_length=256)
    fifo_topic: bool = False
    display_name: str = Field("", max_length=100)
    tags: Dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def validate_fifo_name(self):
        """FIFO topic names must carry the .fifo suffix."""
        if self.fifo_topic != self.name.endswith('.fifo'):
            raise ValueError("name must end with '.fifo' exactly when fifo_topic is true")
        return self


class SNSTopicState(ResourceState, SNSTopicConfig):
    """Recorded SNS topic."""

    model_config = ConfigDict(extra="ignore")

    topic_arn: str


class SNSTopicHandler(AWSResourceHandler):
    """Handler for SNS topics.

    CreateTopic is idempotent on AWS and hands back an existing topic of the
    same name, so ownership is checked on the returned topic instead of
    relying on an already-exists error.
    """

    type_name = "aws:SNS.Topic"
    service_name = "sns"
    config_model = SNSTopicConfig
    state_model = SNSTopicState
    immutable_fields = ("name", "fifo_topic")
    mutable_fields = ("display_name", "tags")
    not_found_codes = frozenset({'NotFound', 'NotFoundException', 'ResourceNotFound'})

    def describe(self, ctx, state: SNSTopicState) -> DescribeResult:
        try:
            attributes = self._call(
                ctx, 'get_topic_attributes', TopicArn=state.topic_arn
            )['Attributes']
            tags = tag_dict(
                self._call(ctx, 'list_tags_for_resource', ResourceArn=state.topic_arn).get('Tags')
            )
        except NotFoundError:
            return DescribeResult.gone()

        return DescribeResult(
            exists=True,
            live_config=SNSTopicConfig(
                name=state.name,
                fifo_topic=attributes.get('FifoTopic', 'false') == 'true',
                display_name=attributes.get('DisplayName', ''),
                tags=strip_owner(tags),
            ),
        )

    def create(self, ctx, config: SNSTopicConfig) -> SNSTopicState:
        attributes = {}
        if config.display_name:
            attributes['DisplayName'] = config.display_name
        if config.fifo_topic:
            attributes['FifoTopic'] = 'true'

        response = self._call(
            ctx,
            'create_topic',
            Name=config.name,
            Attributes=attributes,
            Tags=tag_list(self._with_owner(ctx, config.tags)),
        )
        topic_arn = response['TopicArn']

        tags = tag_dict(
            self._call(ctx, 'list_tags_for_resource', ResourceArn=topic_arn).get('Tags')
        )
        if not self._owned_by(ctx, tags):
            raise AlreadyExistsError(
                f"Topic {config.name} already exists and is not owned by {ctx.owner}"
            )

        logger.info(f"Created SNS topic {config.name}")
        return SNSTopicState(topic_arn=topic_arn, **config.model_dump())

    def update(self, ctx, config: SNSTopicConfig, state: SNSTopicState) -> SNSTopicState:
        self._call(
            ctx,
            'set_topic_attributes',
            TopicArn=state.topic_arn,
            AttributeName='DisplayName',
            AttributeValue=config.display_name,
        )

        current = tag_dict(
            self._call(ctx, 'list_tags_for_resource', ResourceArn=state.topic_arn).get('Tags')
        )
        removed = sorted(set(strip_owner(current)) - set(config.tags))
        if removed:
            self._call(ctx, 'untag_resource', ResourceArn=state.topic_arn, TagKeys=removed)
        self._call(
            ctx,
            'tag_resource',
            ResourceArn=state.topic_arn,
            Tags=tag_list(self._with_owner(ctx, config.tags)),
        )

        return state.model_copy(update={'display_name': config.display_name, 'tags': config.tags})

    def delete(self, ctx, state: SNSTopicState) -> None:
        try:
            self._call(ctx, 'delete_topic', TopicArn=state.topic_arn)
        except NotFoundError:
            logger.debug(f"SNS topic {state.name} already deleted")
