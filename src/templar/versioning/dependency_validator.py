"""Admission check for dependency declarations.

Runs before a new version is stored: every declared dependency must have at
least one non-deprecated version satisfying its constraint.
"""

import logging
from collections.abc import Iterable

from templar.versioning.errors import ConstraintUnsatisfiable, DependencyError, DependencyMissing
from templar.versioning.models import DependencyDeclaration
from templar.versioning.ranges import max_satisfying
from templar.versioning.store import VersionStore

logger = logging.getLogger(__name__)


class DependencyValidator:
    """Validate dependency declarations against the version store."""

    def __init__(self, store: VersionStore):
        self.store = store

    def validate(self, dependencies: Iterable[DependencyDeclaration], for_template_id: str) -> None:
        """Validate every declaration in order.

        Declarations with ``required=False`` that fail are logged and skipped.

        Args:
            dependencies: Declarations of the version being created
            for_template_id: Template the new version belongs to

        Raises:
            DependencyMissing: If a required dependency has no versions
            ConstraintUnsatisfiable: If no non-deprecated version satisfies the constraint
            InvalidRangeFormat: If a constraint is not a valid range expression
        """
        for declaration in dependencies:
            try:
                self._validate_one(declaration, for_template_id)
            except DependencyError as e:
                if declaration.required:
                    raise
                logger.warning(f"Optional dependency not satisfied for {for_template_id}: {e}")

    def _validate_one(self, declaration: DependencyDeclaration, for_template_id: str) -> str:
        dependency_id = declaration.dependency_id
        constraint = declaration.version_constraint

        if not self.store.all(dependency_id):
            raise DependencyMissing(
                f"Dependency {dependency_id} not found for template {for_template_id}",
                template_id=for_template_id,
                dependency_id=dependency_id,
                constraint=constraint,
            )

        # Prereleases stay in; the range decides whether they can match.
        available = self.store.list(dependency_id, include_prerelease=True)
        match = max_satisfying([r.version for r in available], constraint)
        if match is None:
            raise ConstraintUnsatisfiable(
                f"No version of {dependency_id} satisfies {constraint} "
                f"(required by {for_template_id})",
                template_id=for_template_id,
                dependency_id=dependency_id,
                constraint=constraint,
            )

        logger.debug(f"{for_template_id}: {dependency_id}@{constraint} satisfied by {match}")
        return match


__all__ = ["DependencyValidator"]
