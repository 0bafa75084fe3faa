"""Proxy request pipeline and the path policy it consults."""

from fpl_proxy.pipeline.orchestrator import ProxyPipeline
from fpl_proxy.pipeline.resource_policy import ResourcePolicy, ResourcePolicyResolver

__all__ = ["ProxyPipeline", "ResourcePolicy", "ResourcePolicyResolver"]
