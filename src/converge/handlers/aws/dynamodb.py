"""DynamoDB table handler."""

from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

from converge.engine.waiter import wait_until
from converge.handlers.aws.base import AWSResourceHandler, strip_owner, tag_dict, tag_list
from converge.handlers.base import DescribeResult, ResourceConfig, ResourceState
from converge.utils.errors import NotFoundError
from converge.utils.logging import get_logger

logger = get_logger(__name__)


class KeyAttribute(BaseModel):
    """One key attribute of a table."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1)
    type: Literal['S', 'N', 'B'] = 'S'


class DynamoDBTableConfig(ResourceConfig):
    """Desired DynamoDB table."""

    table_name: str = Field(..., min_length=3, max_length=255)
    partition_key: KeyAttribute
    sort_key: Optional[KeyAttribute] = None
    billing_mode: Literal['PAY_PER_REQUEST', 'PROVISIONED'] = 'PAY_PER_REQUEST'
    read_capacity: Optional[int] = Field(None, ge=1)
    write_capacity: Optional[int] = Field(None, ge=1)
    tags: Dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def validate_capacity(self):
        """Capacities are required for PROVISIONED and rejected otherwise."""
        has_capacity = self.read_capacity is not None or self.write_capacity is not None
        if self.billing_mode == 'PROVISIONED':
            if self.read_capacity is None or self.write_capacity is None:
                raise ValueError("PROVISIONED billing requires read_capacity and write_capacity")
        elif has_capacity:
            raise ValueError("read_capacity/write_capacity only apply to PROVISIONED billing")
        return self


class DynamoDBTableState(ResourceState, DynamoDBTableConfig):
    """Recorded DynamoDB table."""

    model_config = ConfigDict(extra="ignore")

    table_arn: str


class DynamoDBTableHandler(AWSResourceHandler):
    """Handler for DynamoDB tables.

    Create, update and delete wait for the table to settle, so the next
    plan always sees a terminal status.
    """

    type_name = "aws:DynamoDB.Table"
    service_name = "dynamodb"
    config_model = DynamoDBTableConfig
    state_model = DynamoDBTableState
    immutable_fields = ("table_name", "partition_key", "sort_key")
    mutable_fields = ("billing_mode", "read_capacity", "write_capacity", "tags")
    not_found_codes = frozenset({'ResourceNotFoundException'})
    already_exists_codes = frozenset({'ResourceInUseException'})

    def describe(self, ctx, state: DynamoDBTableState) -> DescribeResult:
        try:
            table = self._describe_table(ctx, state.table_name)
        except NotFoundError:
            return DescribeResult.gone()
        if table['TableStatus'] == 'DELETING':
            return DescribeResult.gone()

        tags = self._tags(ctx, table['TableArn'])
        live = self._state_from(table, tags)
        return DescribeResult(
            exists=True,
            live_config=DynamoDBTableConfig(**live.model_dump(include=set(DynamoDBTableConfig.model_fields))),
        )

    def create(self, ctx, config: DynamoDBTableConfig) -> DynamoDBTableState:
        key_schema, attribute_definitions = self.build_key_schema(config)

        create_params = {
            'TableName': config.table_name,
            'KeySchema': key_schema,
            'AttributeDefinitions': attribute_definitions,
            'BillingMode': config.billing_mode,
            'Tags': tag_list(self._with_owner(ctx, config.tags)),
        }
        if config.billing_mode == 'PROVISIONED':
            create_params['ProvisionedThroughput'] = self._throughput(config)

        response = self._call(ctx, 'create_table', **create_params)
        table_arn = response['TableDescription']['TableArn']

        self._wait_active(ctx, config.table_name)
        logger.info(f"Created DynamoDB table {config.table_name}")

        return DynamoDBTableState(table_arn=table_arn, **config.model_dump())

    def update(self, ctx, config: DynamoDBTableConfig, state: DynamoDBTableState) -> DynamoDBTableState:
        table = self._describe_table(ctx, state.table_name)
        live = self._state_from(table, {})

        # UpdateTable rejects requests that change nothing
        if (live.billing_mode != config.billing_mode
                or live.read_capacity != config.read_capacity
                or live.write_capacity != config.write_capacity):
            update_params = {
                'TableName': state.table_name,
                'BillingMode': config.billing_mode,
            }
            if config.billing_mode == 'PROVISIONED':
                update_params['ProvisionedThroughput'] = self._throughput(config)
            self._call(ctx, 'update_table', **update_params)
            self._wait_active(ctx, state.table_name)

        current = strip_owner(self._tags(ctx, state.table_arn))
        removed = sorted(set(current) - set(config.tags))
        if removed:
            self._call(ctx, 'untag_resource', ResourceArn=state.table_arn, TagKeys=removed)
        self._call(
            ctx,
            'tag_resource',
            ResourceArn=state.table_arn,
            Tags=tag_list(self._with_owner(ctx, config.tags)),
        )

        return state.model_copy(update={name: getattr(config, name) for name in self.mutable_fields})

    def delete(self, ctx, state: DynamoDBTableState) -> None:
        try:
            self._call(ctx, 'delete_table', TableName=state.table_name)
        except NotFoundError:
            logger.debug(f"DynamoDB table {state.table_name} already deleted")
            return

        wait_until(ctx, lambda: self._is_gone(ctx, state.table_name), f"table {state.table_name} deletion")

    def adopt(self, ctx, config: DynamoDBTableConfig) -> Optional[DynamoDBTableState]:
        table = self._describe_table(ctx, config.table_name)
        tags = self._tags(ctx, table['TableArn'])
        if not self._owned_by(ctx, tags):
            return None

        table = self._wait_active(ctx, config.table_name)
        return self._state_from(table, tags)

    @staticmethod
    def build_key_schema(config: DynamoDBTableConfig) -> Tuple[List[Dict[str, str]], List[Dict[str, str]]]:
        """Build key schema and attribute definitions.

        Args:
            config: Table config

        Returns:
            Tuple of (KeySchema, AttributeDefinitions)
        """
        key_schema = [
            {'AttributeName': config.partition_key.name, 'KeyType': 'HASH'}
        ]
        attribute_definitions = [
            {'AttributeName': config.partition_key.name, 'AttributeType': config.partition_key.type}
        ]

        if config.sort_key:
            key_schema.append({'AttributeName': config.sort_key.name, 'KeyType': 'RANGE'})
            attribute_definitions.append(
                {'AttributeName': config.sort_key.name, 'AttributeType': config.sort_key.type}
            )

        return key_schema, attribute_definitions

    @staticmethod
    def _throughput(config: DynamoDBTableConfig) -> Dict[str, int]:
        return {
            'ReadCapacityUnits': config.read_capacity,
            'WriteCapacityUnits': config.write_capacity,
        }

    def _describe_table(self, ctx, table_name: str) -> Dict[str, Any]:
        return self._call(ctx, 'describe_table', TableName=table_name)['Table']

    def _tags(self, ctx, table_arn: str) -> Dict[str, str]:
        return tag_dict(
            self._call(ctx, 'list_tags_of_resource', ResourceArn=table_arn).get('Tags')
        )

    def _wait_active(self, ctx, table_name: str) -> Dict[str, Any]:
        def probe():
            table = self._describe_table(ctx, table_name)
            return table if table['TableStatus'] == 'ACTIVE' else None

        return wait_until(ctx, probe, f"table {table_name} to become ACTIVE")

    def _is_gone(self, ctx, table_name: str) -> bool:
        try:
            self._describe_table(ctx, table_name)
        except NotFoundError:
            return True
        return False

    @staticmethod
    def _state_from(table: Dict[str, Any], tags: Dict[str, str]) -> DynamoDBTableState:
        attribute_types = {
            attr['AttributeName']: attr['AttributeType']
            for attr in table.get('AttributeDefinitions', [])
        }
        keys = {key['KeyType']: key['AttributeName'] for key in table.get('KeySchema', [])}

        sort_key = None
        if 'RANGE' in keys:
            sort_key = KeyAttribute(name=keys['RANGE'], type=attribute_types.get(keys['RANGE'], 'S'))

        billing_mode = table.get('BillingModeSummary', {}).get('BillingMode', 'PROVISIONED')
        throughput = table.get('ProvisionedThroughput', {})
        provisioned = billing_mode == 'PROVISIONED'

        return DynamoDBTableState(
            table_arn=table['TableArn'],
            table_name=table['TableName'],
            partition_key=KeyAttribute(name=keys['HASH'], type=attribute_types.get(keys['HASH'], 'S')),
            sort_key=sort_key,
            billing_mode=billing_mode,
            read_capacity=throughput.get('ReadCapacityUnits') if provisioned else None,
            write_capacity=throughput.get('WriteCapacityUnits') if provisioned else None,
            tags=strip_owner(tags),
        )
