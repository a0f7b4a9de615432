"""IAM role handler."""

import json
from typing import Any, Dict, List, Optional
from urllib.parse import unquote

from pydantic import ConfigDict, Field, field_validator

from converge.handlers.aws.base import AWSResourceHandler, strip_owner, tag_dict, tag_list
from converge.handlers.base import DescribeResult, ResourceConfig, ResourceState
from converge.utils.errors import NotFoundError
from converge.utils.logging import get_logger

logger = get_logger(__name__)


def _policy(document: Any) -> Dict[str, Any]:
    """Policy documents come back URL-encoded unless the SDK already decoded them."""
    if isinstance(document, str):
        return json.loads(unquote(document))
    return document


class IAMRoleConfig(ResourceConfig):
    """Desired IAM role."""

    role_name: str = Field(..., min_length=1, max_length=64)
    path: str = Field("/", pattern=r"^/(.*/)?$")
    assume_role_policy: Dict[str, Any]
    description: str = Field("", max_length=1000)
    max_session_duration: int = Field(3600, ge=3600, le=43200)
    inline_policies: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    managed_policy_arns: List[str] = Field(default_factory=list)
    tags: Dict[str, str] = Field(default_factory=dict)

    @field_validator("managed_policy_arns")
    @classmethod
    def normalize_arns(cls, v: List[str]) -> List[str]:
        """Attachment order is meaningless; keep a sorted unique list."""
        return sorted(set(v))


class IAMRoleState(ResourceState, IAMRoleConfig):
    """Recorded IAM role.

    Inline policy names and managed policy ARNs are recorded so the role can
    be emptied and deleted from state alone.
    """

    model_config = ConfigDict(extra="ignore")

    role_arn: str
    role_id: str


class IAMRoleHandler(AWSResourceHandler):
    """Handler for IAM roles with inline and managed policies."""

    type_name = "aws:IAM.Role"
    service_name = "iam"
    config_model = IAMRoleConfig
    state_model = IAMRoleState
    immutable_fields = ("role_name", "path")
    mutable_fields = (
        "assume_role_policy",
        "description",
        "max_session_duration",
        "inline_policies",
        "managed_policy_arns",
        "tags",
    )
    not_found_codes = frozenset({'NoSuchEntity'})
    already_exists_codes = frozenset({'EntityAlreadyExists'})

    def describe(self, ctx, state: IAMRoleState) -> DescribeResult:
        try:
            live = self._read(ctx, state.role_name)
        except NotFoundError:
            return DescribeResult.gone()

        return DescribeResult(
            exists=True,
            live_config=IAMRoleConfig(**live.model_dump(include=set(IAMRoleConfig.model_fields))),
        )

    def create(self, ctx, config: IAMRoleConfig) -> IAMRoleState:
        response = self._call(
            ctx,
            'create_role',
            RoleName=config.role_name,
            Path=config.path,
            AssumeRolePolicyDocument=json.dumps(config.assume_role_policy),
            Description=config.description,
            MaxSessionDuration=config.max_session_duration,
            Tags=tag_list(self._with_owner(ctx, config.tags)),
        )
        role = response['Role']

        for policy_name, document in config.inline_policies.items():
            self._call(
                ctx,
                'put_role_policy',
                RoleName=config.role_name,
                PolicyName=policy_name,
                PolicyDocument=json.dumps(document),
            )

        for policy_arn in config.managed_policy_arns:
            self._call(ctx, 'attach_role_policy', RoleName=config.role_name, PolicyArn=policy_arn)

        logger.info(f"Created IAM role {config.role_name}")
        return IAMRoleState(role_arn=role['Arn'], role_id=role['RoleId'], **config.model_dump())

    def update(self, ctx, config: IAMRoleConfig, state: IAMRoleState) -> IAMRoleState:
        role_name = state.role_name

        self._call(
            ctx,
            'update_assume_role_policy',
            RoleName=role_name,
            PolicyDocument=json.dumps(config.assume_role_policy),
        )
        self._call(
            ctx,
            'update_role',
            RoleName=role_name,
            Description=config.description,
            MaxSessionDuration=config.max_session_duration,
        )

        # Inline policies
        current_inline = set(self._inline_policy_names(ctx, role_name))
        for policy_name in sorted(current_inline - set(config.inline_policies)):
            self._call(ctx, 'delete_role_policy', RoleName=role_name, PolicyName=policy_name)
        for policy_name, document in config.inline_policies.items():
            self._call(
                ctx,
                'put_role_policy',
                RoleName=role_name,
                PolicyName=policy_name,
                PolicyDocument=json.dumps(document),
            )

        # Managed policies
        current_managed = set(self._attached_policy_arns(ctx, role_name))
        desired_managed = set(config.managed_policy_arns)
        for policy_arn in sorted(current_managed - desired_managed):
            self._call(ctx, 'detach_role_policy', RoleName=role_name, PolicyArn=policy_arn)
        for policy_arn in sorted(desired_managed - current_managed):
            self._call(ctx, 'attach_role_policy', RoleName=role_name, PolicyArn=policy_arn)

        # Tags
        current_tags = strip_owner(self._role_tags(ctx, role_name))
        removed = sorted(set(current_tags) - set(config.tags))
        if removed:
            self._call(ctx, 'untag_role', RoleName=role_name, TagKeys=removed)
        self._call(ctx, 'tag_role', RoleName=role_name, Tags=tag_list(self._with_owner(ctx, config.tags)))

        return state.model_copy(update={name: getattr(config, name) for name in self.mutable_fields})

    def delete(self, ctx, state: IAMRoleState) -> None:
        role_name = state.role_name
        try:
            inline = set(state.inline_policies) | set(self._inline_policy_names(ctx, role_name))
            managed = set(state.managed_policy_arns) | set(self._attached_policy_arns(ctx, role_name))
        except NotFoundError:
            logger.debug(f"IAM role {role_name} already deleted")
            return

        # A role cannot be deleted while policies are attached
        for policy_name in sorted(inline):
            try:
                self._call(ctx, 'delete_role_policy', RoleName=role_name, PolicyName=policy_name)
            except NotFoundError:
                pass
        for policy_arn in sorted(managed):
            try:
                self._call(ctx, 'detach_role_policy', RoleName=role_name, PolicyArn=policy_arn)
            except NotFoundError:
                pass

        try:
            self._call(ctx, 'delete_role', RoleName=role_name)
        except NotFoundError:
            logger.debug(f"IAM role {role_name} already deleted")

    def adopt(self, ctx, config: IAMRoleConfig) -> Optional[IAMRoleState]:
        tags = self._role_tags(ctx, config.role_name)
        if not self._owned_by(ctx, tags):
            return None
        return self._read(ctx, config.role_name)

    def _read(self, ctx, role_name: str) -> IAMRoleState:
        """Read the live role with its policies and user tags."""
        role = self._call(ctx, 'get_role', RoleName=role_name)['Role']

        inline_policies = {}
        for policy_name in self._inline_policy_names(ctx, role_name):
            response = self._call(ctx, 'get_role_policy', RoleName=role_name, PolicyName=policy_name)
            inline_policies[policy_name] = _policy(response['PolicyDocument'])

        return IAMRoleState(
            role_arn=role['Arn'],
            role_id=role['RoleId'],
            role_name=role['RoleName'],
            path=role.get('Path', '/'),
            assume_role_policy=_policy(role['AssumeRolePolicyDocument']),
            description=role.get('Description', ''),
            max_session_duration=role.get('MaxSessionDuration', 3600),
            inline_policies=inline_policies,
            managed_policy_arns=self._attached_policy_arns(ctx, role_name),
            tags=strip_owner(self._role_tags(ctx, role_name)),
        )

    def _inline_policy_names(self, ctx, role_name: str) -> List[str]:
        return self._call(ctx, 'list_role_policies', RoleName=role_name).get('PolicyNames', [])

    def _attached_policy_arns(self, ctx, role_name: str) -> List[str]:
        response = self._call(ctx, 'list_attached_role_policies', RoleName=role_name)
        return [policy['PolicyArn'] for policy in response.get('AttachedPolicies', [])]

    def _role_tags(self, ctx, role_name: str) -> Dict[str, str]:
        return tag_dict(self._call(ctx, 'list_role_tags', RoleName=role_name).get('Tags'))
