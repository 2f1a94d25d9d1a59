"""Top-level owner resolution for pods.

Walks a pod's first owner reference past intermediate controllers to the
resource a user actually manages:

    Pod -> ReplicaSet -> Deployment
    Pod -> Job        -> CronJob
    Pod -> DaemonSet | StatefulSet | <custom resource>
    Pod (no owner)    -> the pod itself

Orphaned ReplicaSets and Jobs fall back to a label-selector scan of the
Deployments or CronJobs in the pod's namespace.  The first match in listing
order wins; the API server does not guarantee that order, so when several
controllers select the same pod the choice is arbitrary.

Every lookup is a fresh API call.  Failures never raise: the resolver logs
and returns a partial descriptor instead.
"""

from __future__ import annotations

from typing import Any

import structlog

from workloadwatch.gateway.base import ClusterGateway, GatewayError, ResourceNotFoundError
from workloadwatch.models.workloads import (
    CustomResourceDescriptor,
    OwnerDescriptor,
    OwnerKind,
    OwnerPayload,
    OwnerReference,
    Pod,
    ResourceBody,
    owner_references_of,
)
from workloadwatch.reconciler.selectors import selector_matches

_log = structlog.get_logger(component="reconciler.owners")

# Intermediate controller kind -> kind scanned when the controller is orphaned
_FALLBACK_KINDS: dict[str, OwnerKind] = {
    OwnerKind.REPLICA_SET.value: OwnerKind.DEPLOYMENT,
    OwnerKind.JOB.value: OwnerKind.CRON_JOB,
}


class OwnerResolver:
    """Resolves and re-checks the top-level owner of a pod via the gateway."""

    def __init__(self, gateway: ClusterGateway) -> None:
        self._gateway = gateway

    async def resolve(self, pod: Pod) -> OwnerDescriptor:
        """Return the nearest top-level owner of *pod*."""
        if not pod.owner_references:
            return await self._pod_owner(pod)

        ref = pod.owner_references[0]
        fallback_kind = _FALLBACK_KINDS.get(ref.kind)
        if fallback_kind is not None:
            return await self._resolve_through(pod, ref, fallback_kind)
        return await self._describe(ref.name, ref.kind, ref.api_version, pod.namespace)

    async def owner_exists(self, owner: OwnerDescriptor, namespace: str) -> bool:
        """Ask the API server whether *owner* still exists.

        Only a definite 404 counts as absent.  An owner without a name has
        nothing upstream to keep its workload alive and is reported absent.
        Transient errors and unverifiable kinds count as present.
        """
        if not owner.name:
            return False
        try:
            if isinstance(owner.payload, CustomResourceDescriptor):
                await self._gateway.get_custom_resource(owner.payload, owner.name, namespace)
            elif OwnerKind.parse(owner.kind) is not None:
                await self._gateway.get_resource(owner.kind, owner.name, namespace)
            else:
                _log.info(
                    "owner_existence_unverifiable",
                    kind=owner.kind,
                    name=owner.name,
                    namespace=namespace,
                )
                return True
        except ResourceNotFoundError:
            return False
        except GatewayError as exc:
            _log.warning(
                "owner_existence_check_failed",
                kind=owner.kind,
                name=owner.name,
                namespace=namespace,
                error=str(exc),
            )
            return True
        return True

    async def fetch_payload(self, name: str, kind: str, api_version: str, namespace: str) -> OwnerPayload:
        """Fetch the opaque owner payload for *kind*/*name*.

        Built-in kinds return the resource body.  Other kinds are looked up
        among the cluster's CustomResourceDefinitions.  Returns None on any
        failure.
        """
        owner_kind = OwnerKind.parse(kind)
        if owner_kind is None:
            return await self._custom_descriptor(kind, api_version)
        try:
            body = await self._gateway.get_resource(owner_kind.value, name, namespace)
        except GatewayError as exc:
            _log.warning(
                "owner_payload_fetch_failed",
                kind=kind,
                name=name,
                namespace=namespace,
                error=str(exc),
            )
            return None
        return ResourceBody(kind=owner_kind, body=body)

    # ------------------------------------------------------------------
    # Resolution steps
    # ------------------------------------------------------------------

    async def _pod_owner(self, pod: Pod) -> OwnerDescriptor:
        name = pod.display_name
        payload = await self.fetch_payload(name, OwnerKind.POD.value, "v1", pod.namespace)
        kind = OwnerKind.POD.value
        if isinstance(payload, CustomResourceDescriptor):
            kind = payload.kind
        return OwnerDescriptor(name=name, kind=kind, payload=payload)

    async def _describe(self, name: str, kind: str, api_version: str, namespace: str) -> OwnerDescriptor:
        payload = await self.fetch_payload(name, kind, api_version, namespace)
        return OwnerDescriptor(name=name, kind=kind, payload=payload)

    async def _resolve_through(self, pod: Pod, ref: OwnerReference, fallback_kind: OwnerKind) -> OwnerDescriptor:
        """Resolve past an intermediate ReplicaSet or Job."""
        try:
            intermediate = await self._gateway.get_resource(ref.kind, ref.name, pod.namespace)
        except GatewayError as exc:
            _log.warning(
                "intermediate_owner_lookup_failed",
                pod=pod.display_name,
                kind=ref.kind,
                name=ref.name,
                namespace=pod.namespace,
                error=str(exc),
            )
            return OwnerDescriptor()

        parents = owner_references_of(intermediate)
        if parents:
            parent = parents[0]
            return await self._describe(parent.name, parent.kind, parent.api_version, pod.namespace)

        _log.debug(
            "intermediate_owner_orphaned",
            kind=ref.kind,
            name=ref.name,
            namespace=pod.namespace,
            scanning=fallback_kind.value,
        )
        return await self._select_by_labels(pod, fallback_kind)

    async def _select_by_labels(self, pod: Pod, kind: OwnerKind) -> OwnerDescriptor:
        """Pick the first *kind* in the pod's namespace whose selector matches the pod."""
        try:
            candidates = await self._gateway.list_resources(kind.value, pod.namespace)
        except GatewayError as exc:
            _log.warning(
                "owner_candidates_list_failed",
                kind=kind.value,
                namespace=pod.namespace,
                error=str(exc),
            )
            return OwnerDescriptor()

        for candidate in candidates:
            if selector_matches(_selector_of(candidate, kind), pod.labels):
                name = str((candidate.get("metadata") or {}).get("name") or "")
                return OwnerDescriptor(name=name, kind=kind.value, payload=ResourceBody(kind=kind, body=candidate))

        _log.info(
            "owner_selector_no_match",
            pod=pod.display_name,
            kind=kind.value,
            namespace=pod.namespace,
            candidates=len(candidates),
        )
        return await self._pod_owner(pod)

    async def _custom_descriptor(self, kind: str, api_version: str) -> CustomResourceDescriptor | None:
        try:
            crds = await self._gateway.list_custom_resource_definitions()
        except GatewayError as exc:
            _log.warning("crd_list_failed", kind=kind, error=str(exc))
            return None

        for crd in crds:
            spec = crd.get("spec") or {}
            names = spec.get("names") or {}
            accepted = ((crd.get("status") or {}).get("acceptedNames") or {}).get("kind")
            if kind not in (accepted, names.get("kind")):
                continue
            return CustomResourceDescriptor(
                kind=kind,
                api_version=api_version or _served_api_version(spec),
                plural=str(names.get("plural") or ""),
            )

        _log.info("owner_kind_unrecognised", kind=kind, api_version=api_version)
        return None


def _selector_of(resource: dict[str, Any], kind: OwnerKind) -> dict[str, Any] | None:
    """Return the label selector that decides which pods *resource* owns."""
    spec = resource.get("spec") or {}
    if kind is not OwnerKind.CRON_JOB:
        return spec.get("selector")
    job_spec = (spec.get("jobTemplate") or {}).get("spec") or {}
    if job_spec.get("selector"):
        return job_spec["selector"]
    template_labels = ((job_spec.get("template") or {}).get("metadata") or {}).get("labels")
    return {"matchLabels": template_labels} if template_labels else None


def _served_api_version(crd_spec: dict[str, Any]) -> str:
    group = str(crd_spec.get("group") or "")
    versions = crd_spec.get("versions") or []
    storage = next((v for v in versions if v.get("storage")), versions[0] if versions else {})
    version = str(storage.get("name") or "")
    return f"{group}/{version}" if group else version
