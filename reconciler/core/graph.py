"""Turns declared resources into instances with dependency edges."""

import re
from typing import Any, Callable, Dict, Iterable, List, Set, Tuple

import structlog

from reconciler.clients.exceptions import ManifestError
from reconciler.config.manifest_models import ResourceDeclaration
from reconciler.core.models import Reference, ResourceInstance, ResourceKind

logger = structlog.get_logger(__name__)

# ${kind.name.attribute}; attribute may be dotted (${vector_store.docs.file_counts.total})
REFERENCE_PATTERN = re.compile(r'^\$\{([a-z_]+)\.([A-Za-z_][A-Za-z0-9_-]*)\.([A-Za-z0-9_.]+)\}$')
EMBEDDED_REFERENCE = re.compile(r'\$\{([a-z_]+)\.[A-Za-z_][A-Za-z0-9_-]*\.[A-Za-z0-9_.]+\}')

_KINDS = {kind.value for kind in ResourceKind}


def _convert(value: Any, found: Set[str]) -> Any:
    if isinstance(value, str):
        match = REFERENCE_PATTERN.match(value)
        if match and match.group(1) in _KINDS:
            reference = Reference(
                address=f"{match.group(1)}.{match.group(2)}",
                attribute=match.group(3),
            )
            found.add(reference.address)
            return reference
        if any(m.group(1) in _KINDS for m in EMBEDDED_REFERENCE.finditer(value)):
            raise ManifestError(
                f"References must make up the whole value, not part of a string: {value!r}"
            )
        return value
    if isinstance(value, dict):
        return {k: _convert(v, found) for k, v in value.items()}
    if isinstance(value, list):
        return [_convert(v, found) for v in value]
    return value


def parse_references(attributes: Dict[str, Any]) -> Tuple[Dict[str, Any], Set[str]]:
    """Replace ``${kind.name.attr}`` strings with Reference objects.

    Returns:
        Converted attributes and the set of referenced addresses
    """
    found: Set[str] = set()
    converted = _convert(attributes, found)
    return converted, found


def resolve_references(value: Any, resolver: Callable[[Reference], Any]) -> Any:
    """Substitute every Reference for which ``resolver`` returns a value.

    References the resolver cannot satisfy (it returns the Reference
    itself) are left in place so the diff reports them unresolvable.
    """
    if isinstance(value, Reference):
        return resolver(value)
    if isinstance(value, dict):
        return {k: resolve_references(v, resolver) for k, v in value.items()}
    if isinstance(value, list):
        return [resolve_references(v, resolver) for v in value]
    return value


def topological_order(dependencies: Dict[str, Iterable[str]]) -> List[str]:
    """Order addresses so every address follows all of its dependencies.

    Args:
        dependencies: Address -> addresses it depends on

    Returns:
        Addresses in dependency order, ties broken alphabetically

    Raises:
        ManifestError: If the dependencies contain a cycle
    """
    remaining = {address: set(deps) & set(dependencies) for address, deps in dependencies.items()}
    ordered: List[str] = []

    while remaining:
        ready = sorted(address for address, deps in remaining.items() if not deps)
        if not ready:
            cycle = " -> ".join(sorted(remaining))
            raise ManifestError(f"Dependency cycle between: {cycle}")
        for address in ready:
            ordered.append(address)
            del remaining[address]
        for deps in remaining.values():
            deps.difference_update(ready)

    return ordered


def build_instances(declarations: List[ResourceDeclaration]) -> List[ResourceInstance]:
    """Build ResourceInstances from declarations.

    Args:
        declarations: Entries of the ``resources:`` list

    Returns:
        Instances in dependency order

    Raises:
        ManifestError: On duplicate addresses, unknown reference targets or cycles
    """
    addresses = [declaration.address for declaration in declarations]
    duplicates = sorted({a for a in addresses if addresses.count(a) > 1})
    if duplicates:
        raise ManifestError(f"Duplicate resource addresses: {', '.join(duplicates)}")
    known = set(addresses)

    instances: Dict[str, ResourceInstance] = {}
    for declaration in declarations:
        attributes, referenced = parse_references(declaration.attributes)
        depends_on = set(referenced) | set(declaration.depends_on)

        if declaration.address in depends_on:
            raise ManifestError(f"{declaration.address} references itself")
        unknown = sorted(depends_on - known)
        if unknown:
            raise ManifestError(
                f"{declaration.address} references undeclared instances: {', '.join(unknown)}"
            )

        instances[declaration.address] = ResourceInstance(
            kind=declaration.type,
            name=declaration.name,
            declared_attributes=attributes,
            identity=declaration.import_id,
            import_mode=declaration.import_id is not None,
            depends_on=sorted(depends_on),
        )

    order = topological_order({a: i.depends_on for a, i in instances.items()})
    logger.debug("Built instance graph", instances=len(order))
    return [instances[address] for address in order]
