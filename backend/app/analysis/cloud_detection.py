"""
Cloud provider detection from extracted components and raw file content.

Models often mislabel or omit providers, so the providers found here override
the model's metadata whenever at least one pattern matches.
"""

from __future__ import annotations

import json
from typing import Any

AWS_PATTERNS = (
    "ec2", "s3", "lambda", "rds", "vpc", "cloudfront", "route53", "iam", "kms",
    "elastic", "dynamodb", "sns", "sqs", "api gateway", "elb", "alb", "nlb",
    "cloudformation", "cloudtrail", "config", "systems manager", "sagemaker",
    "rekognition", "comprehend", "polly", "lex", "personalize", "kinesis",
    "emr", "athena", "quicksight", "cloudwatch", "x-ray", "codecommit",
    "codebuild", "codedeploy", "codepipeline", "fargate", "eks", "ecs",
    "batch", "lightsail", "ebs", "efs", "fsx", "glacier", "storage gateway",
    "elasticache", "redshift", "neptune", "documentdb", "timestream",
    "direct connect", "transit gateway", "secrets manager", "certificate manager",
    "waf", "shield", "guardduty", "aws-", "amazon-", "amazonaws.com", "arn:aws:",
)

AZURE_PATTERNS = (
    "app service", "blob storage", "functions", "sql database", "virtual network",
    "load balancer", "application gateway", "cdn", "dns", "expressroute",
    "vpn gateway", "azure ad", "key vault", "security center", "sentinel",
    "ddos protection", "waf", "data factory", "stream analytics", "hdinsight",
    "databricks", "power bi", "monitor", "cognitive services", "machine learning",
    "bot service", "computer vision", "speech services", "resource manager",
    "policy", "blueprints", "cost management", "advisor", "devops",
    "app configuration", "service bus", "event grid", "logic apps",
    "container instances", "aks", "batch", "service fabric", "file storage",
    "queue storage", "table storage", "disk storage", "archive storage",
    "cosmos db", "database for mysql", "database for postgresql", "redis cache",
    "synapse analytics", "azure-", "microsoft-", "azure.com", "windows.net",
    "/subscriptions/",
)

GCP_PATTERNS = (
    "compute engine", "app engine", "cloud functions", "gke", "cloud run",
    "batch", "preemptible vms", "cloud storage", "persistent disk", "filestore",
    "cloud sql", "spanner", "firestore", "bigtable", "vpc", "cloud load balancing",
    "cloud cdn", "cloud dns", "cloud interconnect", "cloud nat", "cloud iam",
    "secret manager", "security command center", "cloud armor", "identity platform",
    "bigquery", "dataflow", "dataproc", "pub/sub", "cloud composer", "data studio",
    "monitoring", "ai platform", "automl", "vision api", "speech-to-text",
    "translation api", "dialogflow", "cloud resource manager", "deployment manager",
    "cloud console", "cloud shell", "cloud build", "container registry",
    "artifact registry", "cloud source repositories", "gcp-", "google-",
    "googleapis.com", "gcp.com", "projects/",
)

KUBERNETES_PATTERNS = (
    "kubernetes", "k8s", "pod", "service", "deployment", "configmap", "secret",
    "ingress", "persistentvolume", "statefulset", "daemonset", "job", "cronjob",
    "namespace", "rbac", "network policy", "pod security policy", "admission controller",
    "kubernetes.io/", "k8s.io/", "apiversion:", "kind:", "eks", "aks", "gke",
    "openshift", "rancher",
)

COMPONENT_PATTERNS = (
    ("aws", AWS_PATTERNS),
    ("azure", AZURE_PATTERNS),
    ("gcp", GCP_PATTERNS),
    ("kubernetes", KUBERNETES_PATTERNS),
)

CONTENT_MARKERS = (
    ("aws", ("aws:", "amazon:", 'provider "aws"', 'provider "amazon"', "arn:aws:", "amazonaws.com")),
    (
        "azure",
        (
            "azure:", "microsoft:", 'provider "azurerm"', 'provider "azure"',
            "azure.com", "windows.net", "/subscriptions/",
        ),
    ),
    (
        "gcp",
        (
            "google:", "gcp:", 'provider "google"', 'provider "gcp"',
            "googleapis.com", "gcp.com", "projects/",
        ),
    ),
    ("kubernetes", ("apiversion:", "kind:", "kubernetes.io/", "k8s.io/", "metadata:", "spec:")),
)


def _component_text(component: dict[str, Any]) -> str:
    config = component.get("configuration") or {}
    try:
        config_text = json.dumps(config, default=str)
    except (TypeError, ValueError):
        config_text = str(config)
    parts = [
        str(component.get("name") or ""),
        str(component.get("type") or ""),
        str(component.get("cloudService") or ""),
        str(component.get("description") or ""),
        config_text,
    ]
    return " ".join(parts).lower()


def detect_component_providers(component: dict[str, Any]) -> list[str]:
    if not isinstance(component, dict):
        return []
    text = _component_text(component)
    return [provider for provider, patterns in COMPONENT_PATTERNS if any(p in text for p in patterns)]


def detect_content_providers(content: str) -> list[str]:
    lowered = (content or "").lower()
    return [provider for provider, markers in CONTENT_MARKERS if any(m in lowered for m in markers)]


def detect_providers(components: list[Any], content: str = "", file_type: str = "text") -> list[str]:
    found: list[str] = []
    for component in components or []:
        for provider in detect_component_providers(component):
            if provider not in found:
                found.append(provider)
    if file_type != "image":
        for provider in detect_content_providers(content):
            if provider not in found:
                found.append(provider)
    return found


def hybrid_cloud_model(providers: list[str]) -> str:
    if len(providers) > 1:
        return "multi-cloud"
    if "kubernetes" in providers:
        return "hybrid-cloud"
    return "single-cloud"


def apply_detected_providers(
    metadata: dict[str, Any],
    components: list[Any],
    content: str = "",
    file_type: str = "text",
) -> dict[str, Any]:
    detected = detect_providers(components, content, file_type)
    if not detected:
        return dict(metadata or {})
    return {
        **(metadata or {}),
        "cloudProviders": detected,
        "primaryCloudProvider": detected[0],
        "hybridCloudModel": hybrid_cloud_model(detected),
    }
