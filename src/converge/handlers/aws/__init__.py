"""AWS resource handlers."""

from .base import OWNER_TAG, AWSResourceHandler
from .dynamodb import DynamoDBTableHandler
from .ecr import ECRRepositoryHandler
from .iam import IAMRoleHandler
from .s3 import S3BucketHandler
from .sns import SNSTopicHandler
from .sqs import SQSQueueHandler

AWS_HANDLERS = (
    SQSQueueHandler,
    SNSTopicHandler,
    DynamoDBTableHandler,
    S3BucketHandler,
    IAMRoleHandler,
    ECRRepositoryHandler,
)

__all__ = [
    'OWNER_TAG',
    'AWSResourceHandler',
    'AWS_HANDLERS',
    'DynamoDBTableHandler',
    'ECRRepositoryHandler',
    'IAMRoleHandler',
    'S3BucketHandler',
    'SNSTopicHandler',
    'SQSQueueHandler',
]
