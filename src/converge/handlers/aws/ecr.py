"""ECR repository handler."""

from typing import Any, Dict, Literal, Optional

from pydantic import ConfigDict, Field

from converge.handlers.aws.base import AWSResourceHandler, strip_owner, tag_dict, tag_list
from converge.handlers.base import DescribeResult, ResourceConfig, ResourceState
from converge.utils.errors import NotFoundError
from converge.utils.logging import get_logger

logger = get_logger(__name__)


class ECRRepositoryConfig(ResourceConfig):
    """Desired ECR repository."""

    repository_name: str = Field(..., min_length=2, max_length=256)
    image_tag_mutability: Literal['MUTABLE', 'IMMUTABLE'] = 'MUTABLE'
    scan_on_push: bool = False
    force_delete: bool = Field(True, description="Delete the repository even if it holds images")
    tags: Dict[str, str] = Field(default_factory=dict)


class ECRRepositoryState(ResourceState, ECRRepositoryConfig):
    """Recorded ECR repository."""

    model_config = ConfigDict(extra="ignore")

    repository_arn: str
    registry_id: str
    repository_uri: str


class ECRRepositoryHandler(AWSResourceHandler):
    """Handler for ECR repositories."""

    type_name = "aws:ECR.Repository"
    service_name = "ecr"
    config_model = ECRRepositoryConfig
    state_model = ECRRepositoryState
    immutable_fields = ("repository_name",)
    mutable_fields = ("image_tag_mutability", "scan_on_push", "force_delete", "tags")
    not_found_codes = frozenset({'RepositoryNotFoundException'})
    already_exists_codes = frozenset({'RepositoryAlreadyExistsException'})

    def describe(self, ctx, state: ECRRepositoryState) -> DescribeResult:
        try:
            repository = self._describe_repository(ctx, state.repository_name, state.registry_id)
            tags = self._tags(ctx, state.repository_arn)
        except NotFoundError:
            return DescribeResult.gone()

        live = self._state_from(repository, tags, state.force_delete)
        return DescribeResult(
            exists=True,
            live_config=ECRRepositoryConfig(**live.model_dump(include=set(ECRRepositoryConfig.model_fields))),
        )

    def create(self, ctx, config: ECRRepositoryConfig) -> ECRRepositoryState:
        response = self._call(
            ctx,
            'create_repository',
            repositoryName=config.repository_name,
            imageTagMutability=config.image_tag_mutability,
            imageScanningConfiguration={'scanOnPush': config.scan_on_push},
            tags=tag_list(self._with_owner(ctx, config.tags)),
        )
        repository = response['repository']

        logger.info(f"Created ECR repository {config.repository_name}")
        return ECRRepositoryState(
            repository_arn=repository['repositoryArn'],
            registry_id=repository['registryId'],
            repository_uri=repository['repositoryUri'],
            **config.model_dump(),
        )

    def update(self, ctx, config: ECRRepositoryConfig, state: ECRRepositoryState) -> ECRRepositoryState:
        self._call(
            ctx,
            'put_image_tag_mutability',
            registryId=state.registry_id,
            repositoryName=state.repository_name,
            imageTagMutability=config.image_tag_mutability,
        )
        self._call(
            ctx,
            'put_image_scanning_configuration',
            registryId=state.registry_id,
            repositoryName=state.repository_name,
            imageScanningConfiguration={'scanOnPush': config.scan_on_push},
        )

        current = strip_owner(self._tags(ctx, state.repository_arn))
        removed = sorted(set(current) - set(config.tags))
        if removed:
            self._call(ctx, 'untag_resource', resourceArn=state.repository_arn, tagKeys=removed)
        self._call(
            ctx,
            'tag_resource',
            resourceArn=state.repository_arn,
            tags=tag_list(self._with_owner(ctx, config.tags)),
        )

        return state.model_copy(update={name: getattr(config, name) for name in self.mutable_fields})

    def delete(self, ctx, state: ECRRepositoryState) -> None:
        try:
            self._call(
                ctx,
                'delete_repository',
                registryId=state.registry_id,
                repositoryName=state.repository_name,
                force=state.force_delete,
            )
        except NotFoundError:
            logger.debug(f"ECR repository {state.repository_name} already deleted")

    def adopt(self, ctx, config: ECRRepositoryConfig) -> Optional[ECRRepositoryState]:
        repository = self._describe_repository(ctx, config.repository_name)
        tags = self._tags(ctx, repository['repositoryArn'])
        if not self._owned_by(ctx, tags):
            return None
        return self._state_from(repository, tags, config.force_delete)

    def _describe_repository(
        self, ctx, repository_name: str, registry_id: Optional[str] = None
    ) -> Dict[str, Any]:
        params = {'repositoryNames': [repository_name]}
        if registry_id:
            params['registryId'] = registry_id
        return self._call(ctx, 'describe_repositories', **params)['repositories'][0]

    def _tags(self, ctx, repository_arn: str) -> Dict[str, str]:
        return tag_dict(
            self._call(ctx, 'list_tags_for_resource', resourceArn=repository_arn).get('tags')
        )

    @staticmethod
    def _state_from(
        repository: Dict[str, Any], tags: Dict[str, str], force_delete: bool
    ) -> ECRRepositoryState:
        return ECRRepositoryState(
            repository_arn=repository['repositoryArn'],
            registry_id=repository['registryId'],
            repository_uri=repository['repositoryUri'],
            repository_name=repository['repositoryName'],
            image_tag_mutability=repository.get('imageTagMutability', 'MUTABLE'),
            scan_on_push=repository.get('imageScanningConfiguration', {}).get('scanOnPush', False),
            force_delete=force_delete,
            tags=strip_owner(tags),
        )
