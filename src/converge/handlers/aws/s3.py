"""S3 bucket handler."""

from typing import Dict, List, Optional

from pydantic import ConfigDict, Field

from converge.handlers.aws.base import AWSResourceHandler, strip_owner, tag_dict, tag_list
from converge.handlers.base import DescribeResult, ResourceConfig, ResourceState
from converge.utils.errors import AlreadyExistsError, NotFoundError, RemoteError
from converge.utils.logging import get_logger

logger = get_logger(__name__)


class S3BucketConfig(ResourceConfig):
    """Desired S3 bucket."""

    bucket: str = Field(..., min_length=3, max_length=63, pattern=r"^[a-z0-9][a-z0-9.-]+[a-z0-9]$")
    versioning: bool = False
    force_destroy: bool = Field(False, description="Empty the bucket before deleting it")
    tags: Dict[str, str] = Field(default_factory=dict)


class S3BucketState(ResourceState, S3BucketConfig):
    """Recorded S3 bucket."""

    model_config = ConfigDict(extra="ignore")

    region: str
    bucket_arn: str


class S3BucketHandler(AWSResourceHandler):
    """Handler for S3 buckets.

    New buckets get public access blocked. A name taken by another account
    is a remote error, never an adoption candidate.
    """

    type_name = "aws:S3.Bucket"
    service_name = "s3"
    config_model = S3BucketConfig
    state_model = S3BucketState
    immutable_fields = ("bucket",)
    mutable_fields = ("versioning", "force_destroy", "tags")
    not_found_codes = frozenset({'404', 'NoSuchBucket', 'NotFound'})
    already_exists_codes = frozenset({'BucketAlreadyOwnedByYou'})

    def describe(self, ctx, state: S3BucketState) -> DescribeResult:
        try:
            self._call(ctx, 'head_bucket', Bucket=state.bucket)
            versioning = self._versioning_enabled(ctx, state.bucket)
            tags = self._bucket_tags(ctx, state.bucket)
        except NotFoundError:
            return DescribeResult.gone()

        return DescribeResult(
            exists=True,
            live_config=S3BucketConfig(
                bucket=state.bucket,
                versioning=versioning,
                force_destroy=state.force_destroy,
                tags=strip_owner(tags),
            ),
        )

    def create(self, ctx, config: S3BucketConfig) -> S3BucketState:
        region = self.client.meta.region_name

        create_params = {'Bucket': config.bucket}
        # us-east-1 rejects an explicit location constraint
        if region != 'us-east-1':
            create_params['CreateBucketConfiguration'] = {'LocationConstraint': region}

        # CreateBucket in us-east-1 succeeds on a bucket we already own, so an
        # existing bucket is sent through adopt and its owner tag check
        try:
            self._call(ctx, 'head_bucket', Bucket=config.bucket)
        except NotFoundError:
            pass
        else:
            raise AlreadyExistsError(f"Bucket {config.bucket} already exists")

        self._call(ctx, 'create_bucket', **create_params)

        self._call(
            ctx,
            'put_public_access_block',
            Bucket=config.bucket,
            PublicAccessBlockConfiguration={
                'BlockPublicAcls': True,
                'IgnorePublicAcls': True,
                'BlockPublicPolicy': True,
                'RestrictPublicBuckets': True,
            },
        )
        if config.versioning:
            self._put_versioning(ctx, config.bucket, True)
        self._put_tags(ctx, config.bucket, config.tags)

        logger.info(f"Created S3 bucket {config.bucket}")
        return S3BucketState(
            region=region,
            bucket_arn=f"arn:aws:s3:::{config.bucket}",
            **config.model_dump(),
        )

    def update(self, ctx, config: S3BucketConfig, state: S3BucketState) -> S3BucketState:
        self._put_versioning(ctx, state.bucket, config.versioning)
        self._put_tags(ctx, state.bucket, config.tags)

        return state.model_copy(update={name: getattr(config, name) for name in self.mutable_fields})

    def delete(self, ctx, state: S3BucketState) -> None:
        try:
            if state.force_destroy:
                self._empty_bucket(ctx, state.bucket)
            self._call(ctx, 'delete_bucket', Bucket=state.bucket)
        except NotFoundError:
            logger.debug(f"S3 bucket {state.bucket} already deleted")

    def adopt(self, ctx, config: S3BucketConfig) -> Optional[S3BucketState]:
        tags = self._bucket_tags(ctx, config.bucket)
        if not self._owned_by(ctx, tags):
            return None

        return S3BucketState(
            region=self.client.meta.region_name,
            bucket_arn=f"arn:aws:s3:::{config.bucket}",
            bucket=config.bucket,
            versioning=self._versioning_enabled(ctx, config.bucket),
            force_destroy=config.force_destroy,
            tags=strip_owner(tags),
        )

    def _versioning_enabled(self, ctx, bucket: str) -> bool:
        return self._call(ctx, 'get_bucket_versioning', Bucket=bucket).get('Status') == 'Enabled'

    def _put_versioning(self, ctx, bucket: str, enabled: bool) -> None:
        self._call(
            ctx,
            'put_bucket_versioning',
            Bucket=bucket,
            VersioningConfiguration={'Status': 'Enabled' if enabled else 'Suspended'},
        )

    def _bucket_tags(self, ctx, bucket: str) -> Dict[str, str]:
        try:
            return tag_dict(self._call(ctx, 'get_bucket_tagging', Bucket=bucket).get('TagSet'))
        except RemoteError as e:
            if e.context.remote_code == 'NoSuchTagSet':
                return {}
            raise

    def _put_tags(self, ctx, bucket: str, tags: Dict[str, str]) -> None:
        # PutBucketTagging replaces the whole tag set
        self._call(
            ctx,
            'put_bucket_tagging',
            Bucket=bucket,
            Tagging={'TagSet': tag_list(self._with_owner(ctx, tags))},
        )

    def _empty_bucket(self, ctx, bucket: str) -> None:
        """Delete every object version and delete marker."""
        params = {'Bucket': bucket}
        while True:
            page = self._call(ctx, 'list_object_versions', **params)

            objects: List[Dict[str, str]] = [
                {'Key': item['Key'], 'VersionId': item['VersionId']}
                for item in page.get('Versions', []) + page.get('DeleteMarkers', [])
            ]
            if objects:
                self._call(ctx, 'delete_objects', Bucket=bucket, Delete={'Objects': objects})

            if not page.get('IsTruncated'):
                break
            params['KeyMarker'] = page['NextKeyMarker']
            params['VersionIdMarker'] = page['NextVersionIdMarker']
