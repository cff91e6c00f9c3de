"""
Prompt assembly for the analysis, blueprint and query flows.
"""

from __future__ import annotations

import json
from typing import Any

JSON_RULES = (
    "Return ONLY valid JSON without any prefix or suffix.\n"
    "- Arrays must be JSON arrays of objects, never strings.\n"
    "- Use double quotes for all keys and string values.\n"
    "- Do not include newlines or escaped characters in JSON values.\n"
)

EXTRACTION_SCHEMA = """{
  "metadata": {
    "architectureType": "microservices|monolith|serverless|hybrid|multi-cloud",
    "cloudProviders": ["aws", "azure", "gcp", "on-premises", "kubernetes"],
    "hybridCloudModel": "single-cloud|multi-cloud|hybrid-cloud|on-premises-only",
    "primaryCloudProvider": "aws|azure|gcp|on-premises|multi-cloud",
    "estimatedComplexity": "low|medium|high",
    "primaryPurpose": "web application|api|data processing|ml-ai|iot|other",
    "environmentType": "development|staging|production",
    "deploymentModel": "public-cloud|private-cloud|hybrid-cloud|multi-cloud|edge-computing"
  },
  "components": [
    {"id": "component1", "name": "Web Application", "type": "compute", "cloudProvider": "azure",
     "cloudService": "Azure App Service", "cloudRegion": "East US", "isManagedService": true,
     "isServerless": false, "configuration": {}, "description": "Hosts the main web application"}
  ],
  "connections": [
    {"id": "connection1", "source": "component1", "target": "component2", "type": "api_call",
     "protocol": "http", "port": 80, "crossCloud": false, "crossRegion": false, "isPrivate": false,
     "description": "API calls from web application to API Gateway"}
  ],
  "networkTopology": {"vpcs": [], "subnets": [], "securityGroups": [], "loadBalancers": []},
  "summary": "Description of the complete architecture"
}"""

ANALYSIS_SCHEMA = """{
  "components": [{"id": "component1", "name": "...", "type": "...", "cloudProvider": "...", "cloudService": "...", "description": "..."}],
  "connections": [{"id": "connection1", "source": "component1", "target": "component2", "type": "...", "protocol": "..."}],
  "risks": [{"id": "risk1", "title": "...", "description": "...", "severity": "high|medium|low",
             "category": "security|performance|cost|compliance", "impact": "...", "components": []}],
  "complianceGaps": [{"id": "gap1", "framework": "SOC2|ISO27001|PCI-DSS|HIPAA|GDPR|CIS", "requirement": "...",
                      "description": "...", "severity": "high|medium|low", "affectedComponents": [], "remediation": "..."}],
  "costIssues": [{"id": "cost1", "title": "...", "description": "...",
                  "category": "overprovisioning|unused_resources|inefficient_services",
                  "estimatedSavings": 1000, "recommendation": "..."}],
  "recommendations": [{"id": "rec1", "issue": "...", "fix": "...", "impact": "low|medium|high",
                       "effort": "low|medium|high", "priority": 1,
                       "category": "security|reliability|performance|cost|compliance"}],
  "resiliencyScore": 75,
  "securityScore": 80,
  "costEfficiencyScore": 70,
  "complianceScore": 65,
  "summary": "...",
  "architectureDescription": "..."
}"""

BLUEPRINT_ANALYSIS_SCHEMA = """{
  "components": [{"name": "...", "type": "database|api|service|storage|network|security|monitoring|cache|queue|gateway",
                  "terraformCategory": "...", "technology": "...", "criticality": "high|medium|low",
                  "dependencies": [], "scalability": "horizontal|vertical|both",
                  "securityLevel": "high|medium|low", "costImpact": "high|medium|low",
                  "performanceCharacteristics": {"latency": "...", "throughput": "...", "availability": 99.9},
                  "description": "...", "responsibilities": []}],
  "componentRelationships": [{"source": "...", "target": "...", "relationship": "...", "strength": 0.8,
                              "dataFlow": "...", "protocol": "..."}],
  "architecturePatterns": [],
  "technologyStack": [],
  "componentComplexity": {"totalComponents": 0, "criticalComponents": 0, "highCouplingComponents": 0,
                          "scalabilityBottlenecks": [], "integrationPoints": 0},
  "scores": {"security": 0, "resiliency": 0, "costEfficiency": 0, "compliance": 0,
             "scalability": 0, "maintainability": 0},
  "recommendations": [{"component": "...", "issue": "...", "recommendation": "...", "priority": "high|medium|low",
                       "impact": "...", "effort": "...", "confidence": 0.8}],
  "insights": [],
  "bestPractices": [],
  "industryStandards": []
}"""

PROVIDER_CONSIDERATIONS = {
    "aws": (
        "AWS-SPECIFIC CONSIDERATIONS:\n"
        "- Security: IAM policies, S3 bucket policies, security groups, NACLs, WAF rules, KMS encryption\n"
        "- Compliance: AWS Config, CloudTrail, GuardDuty, Security Hub\n"
        "- Cost: Reserved and Spot Instances, S3 storage classes\n"
        "- Reliability: Multi-AZ deployments, Auto Scaling, ELB health checks, RDS backups\n"
    ),
    "azure": (
        "AZURE-SPECIFIC CONSIDERATIONS:\n"
        "- Security: Azure AD RBAC, NSG rules, Key Vault, Defender, DDoS Protection\n"
        "- Compliance: Azure Policy, Compliance Manager\n"
        "- Cost: Reservations, Spot VMs, storage tiers, Advisor recommendations\n"
        "- Reliability: Availability Zones, Load Balancer, geo-replication, Backup Vault\n"
    ),
    "gcp": (
        "GCP-SPECIFIC CONSIDERATIONS:\n"
        "- Security: Cloud IAM, VPC firewall rules, Secret Manager, Cloud Armor\n"
        "- Compliance: Cloud Asset Inventory, Security Command Center, Cloud Audit Logs\n"
        "- Cost: Committed Use Discounts, Preemptible VMs, storage classes\n"
        "- Reliability: Managed Instance Groups, Cloud SQL replicas, disk snapshots\n"
    ),
    "kubernetes": (
        "KUBERNETES-SPECIFIC CONSIDERATIONS:\n"
        "- Security: RBAC, Network Policies, Pod Security Standards, admission controllers, secrets\n"
        "- Cost: resource requests/limits, Horizontal Pod Autoscaler, cluster autoscaling\n"
        "- Reliability: pod disruption budgets, health probes, rolling updates\n"
    ),
}

MULTI_CLOUD_CONSIDERATIONS = (
    "MULTI-CLOUD/HYBRID CONSIDERATIONS:\n"
    "- Security: cross-cloud identity federation, encryption in transit, network connectivity\n"
    "- Compliance: data sovereignty, cross-border transfer, unified monitoring\n"
    "- Cost: data transfer costs, vendor lock-in mitigation\n"
    "- Reliability: cross-cloud disaster recovery and failover\n"
)


def build_extraction_prompt(file_type: str, file_name: str, content: str) -> str:
    if file_type == "image":
        subject = "architecture diagram"
        hint = (
            "This is a base64-encoded architecture diagram. Read the visual components, connections and labels. "
            "Look for cloud provider logos, service names and architectural patterns."
        )
    else:
        subject = "infrastructure code"
        hint = (
            "This is infrastructure code. Parse all resources, services and their configurations. "
            "Identify cloud providers from resource types, service names and provider blocks."
        )

    return (
        "You are an expert cloud architect with deep expertise in multi-cloud environments. "
        f"Analyze this {subject} and extract ALL architectural components, connections and metadata.\n\n"
        f"{hint}\n\n"
        "Examine every component for cloud provider indicators (service names, resource types, ARNs, "
        "endpoints, subscription paths, Kubernetes manifests) and identify cross-cloud connections.\n\n"
        f"{JSON_RULES}\n"
        f"Expected JSON schema:\n{EXTRACTION_SCHEMA}\n\n"
        f"File: {file_name}\n"
        f"Content: {content}"
    )


def _format_checklist(items: list[dict[str, Any]]) -> str:
    if not items:
        return "No active checklist items. Apply general cloud architecture best practices."
    blocks = []
    for item in items:
        blocks.append(
            f"Category: {item.get('category', '')}\n"
            f"Item: {item.get('item', '')}\n"
            f"Description: {item.get('description', '')}\n"
            f"Recommended Action: {item.get('recommendedAction', '')}\n"
            f"Owner: {item.get('owner', '')}\n"
            f"Priority: {item.get('priority', '')}"
        )
    return "\n\n".join(blocks)


def build_analysis_prompt(
    extracted: dict[str, Any],
    checklist_items: list[dict[str, Any]],
    component_name: str = "",
    environment: str = "",
) -> str:
    metadata = extracted.get("metadata") or {}
    providers = [str(p).lower() for p in (metadata.get("cloudProviders") or [])]
    considerations = [PROVIDER_CONSIDERATIONS[p] for p in ("aws", "azure", "gcp", "kubernetes") if p in providers]
    if metadata.get("hybridCloudModel") in {"multi-cloud", "hybrid-cloud"}:
        considerations.append(MULTI_CLOUD_CONSIDERATIONS)

    return (
        "Analyze this architecture and provide a security, risk, cost and compliance assessment "
        "with cloud provider awareness.\n\n"
        f'Context: App "{component_name or "unknown"}" in {environment or "unknown"} environment.\n\n'
        "CLOUD PROVIDER CONTEXT:\n"
        f"- Primary Cloud Provider: {metadata.get('primaryCloudProvider') or 'unknown'}\n"
        f"- Hybrid Cloud Model: {metadata.get('hybridCloudModel') or 'unknown'}\n"
        f"- Deployment Model: {metadata.get('deploymentModel') or 'unknown'}\n"
        f"- Cloud Providers Used: {', '.join(providers) or 'unknown'}\n"
        f"- Architecture Type: {metadata.get('architectureType') or 'unknown'}\n"
        f"- Estimated Complexity: {metadata.get('estimatedComplexity') or 'unknown'}\n\n"
        + ("\n".join(considerations) + "\n" if considerations else "")
        + f"Architecture Data:\n{json.dumps(extracted, indent=2, default=str)}\n\n"
        f"EVALUATION CRITERIA - Active Checklist Items:\n{_format_checklist(checklist_items)}\n\n"
        "INSTRUCTIONS:\n"
        "1. Evaluate the architecture against each active checklist item.\n"
        "2. Generate risks, compliance gaps, cost issues and recommendations from that evaluation.\n"
        "3. In recommendations, \"issue\" names the missing or insufficient checklist item and \"fix\" gives the action.\n"
        "4. Provide realistic scores from 0 to 100 based on checklist compliance.\n\n"
        f"{JSON_RULES}\n"
        f"Expected JSON schema:\n{ANALYSIS_SCHEMA}"
    )


def build_blueprint_analysis_prompt(
    blueprint: dict[str, Any],
    components: list[Any],
    connections: list[Any],
) -> str:
    extracted = ""
    if components or connections:
        extracted = (
            "EXTRACTED ARCHITECTURE DATA:\n"
            f"Components: {json.dumps(components, default=str)}\n"
            f"Connections: {json.dumps(connections, default=str)}\n\n"
        )
    return (
        "You are a senior cloud architect. Perform a component-centric analysis of this architecture blueprint.\n\n"
        "BLUEPRINT:\n"
        f"- Name: {blueprint.get('name', '')}\n"
        f"- Description: {blueprint.get('description', '')}\n"
        f"- Type: {blueprint.get('type', '')}\n"
        f"- Category: {blueprint.get('category', '')}\n"
        f"- Complexity: {blueprint.get('complexity', '')}\n"
        f"- Cloud Providers: {', '.join(blueprint.get('cloudProviders') or []) or 'unknown'}\n"
        f"- Tags: {', '.join(blueprint.get('tags') or []) or 'none'}\n\n"
        f"{extracted}"
        "Identify every component with its technology, criticality, dependencies, scalability and security level. "
        "Describe component relationships, architecture patterns and the technology stack. "
        "Score security, resiliency, cost efficiency, compliance, scalability and maintainability from 0 to 100.\n\n"
        f"{JSON_RULES}\n"
        f"Expected JSON schema:\n{BLUEPRINT_ANALYSIS_SCHEMA}"
    )


def build_analysis_query_prompt(question: str, context: str) -> str:
    return (
        "You are an expert cloud architect assistant. Answer the user's question about this specific "
        "architecture analysis using the information provided below.\n\n"
        f"USER QUESTION: {question}\n\n"
        f"ARCHITECTURE ANALYSIS CONTEXT:\n{context}\n\n"
        "INSTRUCTIONS:\n"
        "1. Answer using ONLY the information in the context above.\n"
        "2. Cite exact values, components, risks or recommendations when relevant.\n"
        "3. Provide exact numbers when asked about scores.\n"
        "4. List recommendations with priorities and risks with severity levels.\n"
        "5. If the information is not available in the context, say so clearly.\n"
        "6. Be concise but complete."
    )


def build_blueprint_query_prompt(question: str, context: str) -> str:
    return (
        "You are an expert cloud architect assistant. Answer the user's question about blueprints "
        "using the context provided below.\n\n"
        f"USER QUESTION: {question}\n\n"
        f"BLUEPRINT CONTEXT:\n{context or 'No matching blueprints were found.'}\n\n"
        "INSTRUCTIONS:\n"
        "1. Use the blueprint information above to answer the question.\n"
        "2. Reference blueprints by name and similarity score when relevant.\n"
        "3. Extract patterns, technologies and best practices from the blueprint analyses when asked.\n"
        "4. If no relevant information is found in the context, say so clearly."
    )
