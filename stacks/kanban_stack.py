import os

from aws_cdk import (
    CfnOutput,
    Duration,
    RemovalPolicy,
    Stack,
    aws_apigateway as apigw,
    aws_cognito as cognito,
    aws_dynamodb as ddb,
    aws_lambda as _lambda,
    aws_logs as logs,
)
from constructs import Construct


class KanbanStack(Stack):
    def __init__(self, scope: Construct, construct_id: str, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        stage_name = os.getenv("STAGE", "prod")
        data_retention_mode = os.getenv("DATA_RETENTION_MODE", "destroy").strip().lower()
        if data_retention_mode not in {"destroy", "retain"}:
            raise ValueError(
                "DATA_RETENTION_MODE must be 'destroy' or 'retain' (case-insensitive)"
            )
        # For production deployments, set DATA_RETENTION_MODE=retain.
        stateful_removal_policy = (
            RemovalPolicy.DESTROY
            if data_retention_mode == "destroy"
            else RemovalPolicy.RETAIN
        )
        schema_version = "2026-10-01"
        board_name_scope = os.getenv("KANBAN_BOARD_NAME_SCOPE", "global").strip().lower()
        short_link_base = os.getenv("SHORT_LINK_KANBAN", "").strip()

        name_prefix = f"{construct_id}-{stage_name}"

        def _table(construct_name: str, partition: str, sort: str | None = None) -> ddb.Table:
            return ddb.Table(
                self,
                construct_name,
                partition_key=ddb.Attribute(name=partition, type=ddb.AttributeType.STRING),
                sort_key=(
                    ddb.Attribute(name=sort, type=ddb.AttributeType.STRING) if sort else None
                ),
                billing_mode=ddb.BillingMode.PAY_PER_REQUEST,
                point_in_time_recovery=True,
                removal_policy=stateful_removal_policy,
            )

        boards_table = _table("KanbanBoards", "boardId")
        boards_table.add_global_secondary_index(
            index_name="ShortLinkIndex",
            partition_key=ddb.Attribute(name="shortLink", type=ddb.AttributeType.STRING),
            projection_type=ddb.ProjectionType.ALL,
        )

        lists_table = _table("KanbanLists", "listId")
        lists_table.add_global_secondary_index(
            index_name="BoardIndex",
            partition_key=ddb.Attribute(name="boardId", type=ddb.AttributeType.STRING),
            sort_key=ddb.Attribute(name="pos", type=ddb.AttributeType.NUMBER),
            projection_type=ddb.ProjectionType.ALL,
        )

        tasks_table = _table("KanbanTasks", "taskId")
        tasks_table.add_global_secondary_index(
            index_name="BoardIndex",
            partition_key=ddb.Attribute(name="boardId", type=ddb.AttributeType.STRING),
            sort_key=ddb.Attribute(name="taskId", type=ddb.AttributeType.STRING),
            projection_type=ddb.ProjectionType.ALL,
        )

        subtasks_table = _table("KanbanSubTasks", "subTaskId")
        subtasks_table.add_global_secondary_index(
            index_name="TaskIndex",
            partition_key=ddb.Attribute(name="taskId", type=ddb.AttributeType.STRING),
            sort_key=ddb.Attribute(name="subTaskId", type=ddb.AttributeType.STRING),
            projection_type=ddb.ProjectionType.ALL,
        )

        # Board ids are uuid7-shaped, so the sort key keeps creation order.
        memberships_table = _table("KanbanMemberships", "userId", "boardId")
        uniques_table = _table("KanbanUniques", "uniqueKey")
        users_table = _table("KanbanUsers", "sub")

        user_pool = cognito.UserPool(
            self,
            "KanbanUserPool",
            user_pool_name=f"{name_prefix}-users",
            self_sign_up_enabled=False,
            sign_in_aliases=cognito.SignInAliases(username=True, email=True),
            password_policy=cognito.PasswordPolicy(
                min_length=12,
                require_digits=True,
                require_lowercase=True,
                require_uppercase=True,
                require_symbols=True,
            ),
            removal_policy=stateful_removal_policy,
        )
        user_pool_client = user_pool.add_client(
            "KanbanUserPoolClient",
            auth_flows=cognito.AuthFlow(user_password=True, user_srp=True),
            generate_secret=False,
            refresh_token_validity=Duration.days(1),
        )

        kanban_fn = _lambda.Function(
            self,
            "KanbanHandler",
            runtime=_lambda.Runtime.PYTHON_3_12,
            handler="kanban_handler.handler",
            code=_lambda.Code.from_asset("lambda"),
            timeout=Duration.seconds(20),
            environment={
                "KANBAN_BOARDS_TABLE": boards_table.table_name,
                "KANBAN_LISTS_TABLE": lists_table.table_name,
                "KANBAN_TASKS_TABLE": tasks_table.table_name,
                "KANBAN_SUBTASKS_TABLE": subtasks_table.table_name,
                "KANBAN_MEMBERSHIPS_TABLE": memberships_table.table_name,
                "KANBAN_UNIQUES_TABLE": uniques_table.table_name,
                "KANBAN_USERS_TABLE": users_table.table_name,
                "KANBAN_SCHEMA_VERSION": schema_version,
                "KANBAN_BOARD_NAME_SCOPE": board_name_scope,
                "SHORT_LINK_KANBAN": short_link_base,
            },
        )
        for table in (
            boards_table,
            lists_table,
            tasks_table,
            subtasks_table,
            memberships_table,
            uniques_table,
        ):
            table.grant_read_write_data(kanban_fn)
        users_table.grant_read_data(kanban_fn)

        logs.LogGroup(
            self,
            "KanbanHandlerLogGroup",
            log_group_name=f"/aws/lambda/{kanban_fn.function_name}",
            retention=logs.RetentionDays.ONE_WEEK,
            removal_policy=stateful_removal_policy,
        )
        access_log_group = logs.LogGroup(
            self,
            "KanbanApiAccessLogGroup",
            retention=logs.RetentionDays.ONE_WEEK,
            removal_policy=stateful_removal_policy,
        )

        rest_api = apigw.RestApi(
            self,
            "KanbanApi",
            rest_api_name=f"{name_prefix}-api",
            deploy_options=apigw.StageOptions(
                stage_name=stage_name,
                access_log_destination=apigw.LogGroupLogDestination(access_log_group),
                # Standard fields only; do not log headers (e.g., Authorization).
                access_log_format=apigw.AccessLogFormat.json_with_standard_fields(
                    caller=True,
                    http_method=True,
                    ip=True,
                    protocol=True,
                    request_time=True,
                    resource_path=True,
                    response_length=True,
                    status=True,
                    user=True,
                ),
            ),
            cloud_watch_role=True,
        )

        authorizer = apigw.CognitoUserPoolsAuthorizer(
            self,
            "KanbanCognitoAuthorizer",
            cognito_user_pools=[user_pool],
        )
        integration = apigw.LambdaIntegration(kanban_fn)

        kanban = rest_api.root.add_resource("v1").add_resource("kanban")
        boards = kanban.add_resource("boards")
        board_ref = boards.add_resource("{boardRef}")
        lists = kanban.add_resource("lists")
        tasks = kanban.add_resource("tasks")
        task = tasks.add_resource("{taskId}")
        task_list = task.add_resource("list")
        task_status = task.add_resource("status")
        subtasks = kanban.add_resource("subtasks")

        for resource, method in (
            (boards, "POST"),
            (boards, "GET"),
            (board_ref, "GET"),
            (lists, "POST"),
            (tasks, "POST"),
            (task, "GET"),
            (task, "DELETE"),
            (task_list, "PATCH"),
            (task_status, "PATCH"),
            (subtasks, "POST"),
        ):
            resource.add_method(
                method,
                integration,
                authorization_type=apigw.AuthorizationType.COGNITO,
                authorizer=authorizer,
            )

        CfnOutput(
            self,
            "KanbanInvokeUrl",
            value=f"{rest_api.url}v1/kanban",
            description="Invoke URL base for kanban endpoints.",
        )
        CfnOutput(
            self,
            "UserPoolId",
            value=user_pool.user_pool_id,
            description="Cognito user pool backing the kanban authorizer.",
        )
        CfnOutput(
            self,
            "UserPoolClientId",
            value=user_pool_client.user_pool_client_id,
            description="Cognito app client for obtaining kanban ID tokens.",
        )
        CfnOutput(
            self,
            "UsersTableName",
            value=users_table.table_name,
            description="Users table consulted for reminder recipients (keyed by Cognito sub).",
        )
