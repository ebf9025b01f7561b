"""
AWS Lambda function: execution role, function, log group, alarms, alias.

This component creates an IAM role that Lambda can assume, attaches the basic
execution policy (plus X-Ray and VPC access policies when those features are
on), and creates the function, a log group with a fixed retention, optional
CloudWatch alarms and a ``prod`` alias. ``handler_ref`` hands the function to
an ApiGateway endpoint or authorizer without the API needing to know how the
function was built.

Defaults (memory size, timeout, log retention) are filled by
with_function_defaults() on a copy of the config; the caller's config is
never modified.
"""

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import pulumi
import pulumi_aws as aws

from topology._helpers import default_tags, fill_defaults, merge_tags
from topology.model import HandlerRef

ID: str = "topology:aws:LambdaFunction"

FUNCTION_DEFAULTS: dict[str, int] = {
    "memory_size": 128,
    "timeout": 3,
    "log_retention_days": 14,
}

# Opaque policy document; IAM semantics are not interpreted here.
ASSUME_ROLE_POLICY: str = json.dumps(
    {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Action": "sts:AssumeRole",
                "Principal": {"Service": "lambda.amazonaws.com"},
                "Effect": "Allow",
            }
        ],
    }
)

BASIC_EXECUTION_POLICY: str = "arn:aws:iam::aws:policy/service-role/AWSLambdaBasicExecutionRole"
XRAY_POLICY: str = "arn:aws:iam::aws:policy/AWSXRayDaemonWriteAccess"
VPC_ACCESS_POLICY: str = "arn:aws:iam::aws:policy/service-role/AWSLambdaVPCAccessExecutionRole"

ALARM_PERIOD_SECONDS: int = 300


@dataclass(frozen=True)
class AlertConfig:
    """
    Thresholds for the metric alarms; all alarms notify ``notification_arn``.

    Attributes:
        error_threshold: Errors per period that trigger the error alarm.
        throttles_threshold: Throttles per period that trigger the throttle alarm.
        duration_threshold: Average duration (ms) that triggers the duration alarm.
        notification_arn: SNS topic ARN for alarm actions.
    """

    error_threshold: float
    throttles_threshold: float
    duration_threshold: float
    notification_arn: str


@dataclass(frozen=True)
class FunctionConfig:
    """
    Lambda function settings.

    Zero/empty ``memory_size``, ``timeout`` and ``log_retention_days`` are
    replaced by FUNCTION_DEFAULTS.
    """

    runtime: str
    handler: str
    code: pulumi.Archive
    environment: str
    description: str = ""
    memory_size: int = 0
    timeout: int = 0
    environment_variables: Mapping[str, str] = field(default_factory=dict)
    vpc_config: aws.lambda_.FunctionVpcConfigArgs | Mapping[str, Any] | None = None
    enable_xray: bool = True
    layer_arns: Sequence[str] = ()
    log_retention_days: int = 0
    alert_config: AlertConfig | None = None
    tags: Mapping[str, str] = field(default_factory=dict)


def with_function_defaults(
    config: FunctionConfig,
) -> FunctionConfig:
    """Return a copy of ``config`` with unset sizing/retention fields defaulted."""
    return fill_defaults(config, FUNCTION_DEFAULTS)


def alarm_specs(
    name: str,
    alerts: AlertConfig,
) -> list[dict[str, Any]]:
    """
    Return the metric alarm arguments for a function (without dimensions).

    One alarm each for errors (sum), throttles (sum) and duration (average)
    over ALARM_PERIOD_SECONDS.
    """
    metrics = [
        ("errors", "Errors", "Sum", alerts.error_threshold, "error count"),
        ("throttles", "Throttles", "Sum", alerts.throttles_threshold, "throttle count"),
        ("duration", "Duration", "Average", alerts.duration_threshold, "duration"),
    ]
    return [
        {
            "resource_name": f"{name}-{suffix}",
            "metric_name": metric,
            "statistic": statistic,
            "threshold": threshold,
            "alarm_description": f"Lambda function {name} {label}",
        }
        for suffix, metric, statistic, threshold, label in metrics
    ]


class LambdaFunction(pulumi.ComponentResource):
    """
    Lambda function with its execution role, log group and alias.

    Resources: Role, RolePolicyAttachment (basic, optional X-Ray, optional
    VPC), Function, LogGroup, optional MetricAlarm x3, Alias.
    """

    def __init__(
        self,
        name: str,
        config: FunctionConfig,
        opts: pulumi.ResourceOptions | None = None,
    ):
        """
        Create the role, function and monitoring resources.

        Args:
            name: Pulumi resource name for the function and related resources.
            config: Function settings; defaults are applied to a copy.
            opts: Options for the component itself.

        Outputs (set on self, registered for the component):
            function_name: Provider-assigned function name.
            function_arn: Function ARN.
            invoke_arn: ARN used by API Gateway integrations.
            log_group_name: Name of the function's log group.
        """
        super().__init__(ID, name, None, opts)
        self._logical_name = name

        config = with_function_defaults(config)
        tags = merge_tags(default_tags(config.environment), config.tags)
        child_opts = pulumi.ResourceOptions(parent=self)

        self.role = aws.iam.Role(
            resource_name=f"{name}-role",
            assume_role_policy=ASSUME_ROLE_POLICY,
            tags=tags,
            opts=child_opts,
        )

        policies = [("basic", BASIC_EXECUTION_POLICY)]
        if config.enable_xray:
            policies.append(("xray", XRAY_POLICY))
        if config.vpc_config is not None:
            policies.append(("vpc", VPC_ACCESS_POLICY))
        self.policy_attachments = [
            aws.iam.RolePolicyAttachment(
                resource_name=f"{name}-{suffix}",
                role=self.role.name,
                policy_arn=policy_arn,
                opts=child_opts,
            )
            for suffix, policy_arn in policies
        ]

        self.function = aws.lambda_.Function(
            resource_name=name,
            role=self.role.arn,
            runtime=config.runtime,
            handler=config.handler,
            code=config.code,
            description=config.description,
            memory_size=config.memory_size,
            timeout=config.timeout,
            environment=aws.lambda_.FunctionEnvironmentArgs(
                variables=dict(config.environment_variables),
            ),
            vpc_config=config.vpc_config,
            layers=list(config.layer_arns),
            tracing_config=aws.lambda_.FunctionTracingConfigArgs(
                mode="Active" if config.enable_xray else "PassThrough",
            ),
            tags=tags,
            opts=pulumi.ResourceOptions(parent=self, depends_on=self.policy_attachments),
        )

        self.log_group = aws.cloudwatch.LogGroup(
            resource_name=f"{name}-logs",
            name=self.function.name.apply(lambda function_name: f"/aws/lambda/{function_name}"),
            retention_in_days=config.log_retention_days,
            tags=tags,
            opts=child_opts,
        )

        self.alarms: list[aws.cloudwatch.MetricAlarm] = []
        if config.alert_config is not None:
            for spec in alarm_specs(name, config.alert_config):
                self.alarms.append(
                    aws.cloudwatch.MetricAlarm(
                        comparison_operator="GreaterThanThreshold",
                        evaluation_periods=1,
                        namespace="AWS/Lambda",
                        period=ALARM_PERIOD_SECONDS,
                        alarm_actions=[config.alert_config.notification_arn],
                        dimensions={"FunctionName": self.function.name},
                        tags=tags,
                        opts=child_opts,
                        **spec,
                    )
                )

        self.alias = aws.lambda_.Alias(
            resource_name=f"{name}-prod",
            name="prod",
            function_name=self.function.name,
            function_version="$LATEST",
            opts=child_opts,
        )

        self.function_name: pulumi.Output[str] = self.function.name
        self.function_arn: pulumi.Output[str] = self.function.arn
        self.invoke_arn: pulumi.Output[str] = self.function.invoke_arn
        self.log_group_name: pulumi.Output[str] = self.log_group.name
        pulumi.log.debug(
            f"{name}: declared function with {len(self.policy_attachments)} policy attachments",
            resource=self,
        )
        self.register_outputs(
            {
                "function_name": self.function_name,
                "function_arn": self.function_arn,
                "invoke_arn": self.invoke_arn,
                "log_group_name": self.log_group_name,
            }
        )

    @property
    def handler_ref(self) -> HandlerRef:
        """Reference for ApiGateway endpoints and authorizers."""
        return HandlerRef(
            name=self._logical_name,
            function_name=self.function_name,
            invoke_arn=self.invoke_arn,
        )
