"""Import orchestrator that coordinates Redmine and the target system.

The IssueImporter is the central coordinator of one import run. It:
1. Builds the mapping option from Redmine's live statuses, trackers and priorities
2. Owns the per-run state (identity cache, milestones by name, number mapping)
3. Runs the import stages in order and collects the ImportResult

Import Flow
-----------
Stage 1: Mapping option
    - Fetch statuses, trackers and priorities from Redmine
    - Apply built-in defaults, then operator overrides

Stage 2: Versions
    - Fetch the project's versions, build one milestone per version
    - Append the version's wiki page (if any) to the milestone description
    - Reuse target milestones with the same name instead of re-creating them

Stage 3: Categories
    - Create a choice field from the project's issue categories, unless a
      field with that name already exists (re-runs are idempotent)

Stage 4: Issues
    For each page of issues (sorted by id, all statuses):
        For each issue:
            a. Check the cancellation signal
            b. Transform it (fields, milestone, users, journals)
    Then, for committing runs only:
        c. Renumber "#123" references in descriptions and comments
        d. Persist issue, field values, milestones, comments, changes

Every stage opens its own Redmine client and keeps its work in memory until
the stage is complete, so a cancelled stage leaves nothing half-persisted.

Error Handling
--------------
- Redmine request failures and mapping configuration errors abort the run
- Cancellation ends the run early: the current stage is discarded and the
  returned ImportResult has ``cancelled`` set
- Unresolvable users, milestones and values are collected into the result
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from . import pagination
from .exceptions import ImportCancelledError, SourceNotFoundError
from .history import HistoryReplayer
from .issue_builder import IssueTransformer, parse_date
from .mapping import ImportOption, MappingResolver, build_import_option
from .models import Choice, ChoiceField, ImportResult, Milestone
from .redmine_utils import get_redmine_project_id
from .references import renumber_references
from .users import IdentityCache, IdentityResolver

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .models import TargetIssue, TargetProject
    from .protocols import CancelSignal, TargetSystem
    from .redmine_utils import RedmineClient, RedmineServer

logger = logging.getLogger(__name__)


def wiki_page_id(version_name: str) -> str:
    """Redmine wiki page title conventionally used for a version."""
    return version_name.replace(" ", "_").replace(".", "")


class IssueImporter:
    """Imports the versions, categories and issues of one Redmine project.

    Usage:
        server = redmine_utils.get_server("https://redmine.example.com", api_key)
        importer = IssueImporter(server, target, project, "my-project")
        importer.build_import_option(tracker_overrides={"Support": "Type::Task"})
        result = importer.run()

    One instance is one run: the identity cache and number mapping live as
    long as the importer.
    """

    def __init__(
        self,
        server: RedmineServer,
        target: TargetSystem,
        project: TargetProject,
        redmine_project: str,
        option: ImportOption | None = None,
        *,
        cancel: CancelSignal | None = None,
    ) -> None:
        self._server = server
        self._target = target
        self._project = project
        self._cancel = cancel
        self.redmine_project: str = redmine_project
        self.redmine_project_id: str = get_redmine_project_id(redmine_project)
        self.option: ImportOption | None = option

        self.identity_cache: IdentityCache = IdentityCache()
        self.number_mapping: dict[int, int] = {}
        self.milestones: dict[str, Milestone] = {}
        self.result: ImportResult = ImportResult()

    def build_import_option(
        self,
        base: ImportOption | None = None,
        *,
        status_overrides: Mapping[str, str] | None = None,
        tracker_overrides: Mapping[str, str] | None = None,
        priority_overrides: Mapping[str, str] | None = None,
    ) -> ImportOption:
        """Build and keep the mapping option for this run."""
        setting = self._target.get_issue_setting()
        with self._server.new_client() as client:
            self.option = build_import_option(
                client,
                setting,
                base or self.option,
                status_overrides=status_overrides,
                tracker_overrides=tracker_overrides,
                priority_overrides=priority_overrides,
            )
        return self.option

    @property
    def _option(self) -> ImportOption:
        if self.option is None:
            msg = "Import option not built yet. Call build_import_option() first."
            raise RuntimeError(msg)
        return self.option

    def _versions_endpoint(self) -> str:
        return f"/projects/{self.redmine_project_id}/versions.json"

    def _categories_endpoint(self) -> str:
        return f"/projects/{self.redmine_project_id}/issue_categories.json"

    def import_versions(self) -> list[Milestone]:
        """Create one milestone per Redmine version; returns the newly built milestones."""
        for milestone in self._target.get_milestones(self._project):
            self.milestones.setdefault(milestone.name, milestone)

        logger.info(f"Importing versions from project {self.redmine_project}...")
        new_milestones: list[Milestone] = []
        with self._server.new_client() as client:
            for version in pagination.list_all(client, self._versions_endpoint(), "versions", cancel=self._cancel):
                pagination.check_cancelled(self._cancel)
                name = version["name"]
                if name in self.milestones:
                    logger.info(f"Milestone '{name}' already exists")
                    continue

                due_date = version.get("due_date")
                milestone = Milestone(
                    name=name,
                    project=self._project,
                    description=version.get("description") or None,
                    due_date=parse_date(due_date) if due_date else None,
                    closed=version.get("status") == "closed",
                )
                self._append_wiki_page(client, milestone)
                new_milestones.append(milestone)

        for milestone in new_milestones:
            self.milestones[milestone.name] = milestone
            if not self._option.dry_run:
                self._target.save_milestone(milestone)
        self.result.milestones_created += len(new_milestones)
        logger.info(f"Imported {len(new_milestones)} versions")
        return new_milestones

    def _append_wiki_page(self, client: RedmineClient, milestone: Milestone) -> None:
        endpoint = f"/projects/{self.redmine_project_id}/wiki/{wiki_page_id(milestone.name)}.json"
        try:
            wiki_text = (client.get_json(endpoint).get("wiki_page") or {}).get("text")
        except SourceNotFoundError:
            # Most versions have no wiki page
            return
        if wiki_text:
            milestone.description = f"{milestone.description}\n\n{wiki_text}" if milestone.description else wiki_text

    def import_categories(self) -> ChoiceField | None:
        """Create the category choice field; returns None if the field already exists."""
        category_field = self._option.category_field
        setting = self._target.get_issue_setting()
        if setting.get_field_spec(category_field) is not None:
            logger.info(f"Issue field '{category_field}' already exists")
            return None

        logger.info(f"Importing issue categories from project {self.redmine_project}...")
        with self._server.new_client() as client:
            categories = pagination.list_all(client, self._categories_endpoint(), "issue_categories", cancel=self._cancel)

        field_spec = ChoiceField(
            name=category_field,
            allow_empty=True,
            name_of_empty_value="Undefined",
            choices=[Choice(category["name"]) for category in categories],
        )
        if not self._option.dry_run:
            setting.field_specs.append(field_spec)
            self._target.save_issue_setting(setting)
        return field_spec

    def import_issues(self) -> list[TargetIssue]:
        """Transform every issue of the project, then persist them unless this is a dry run."""
        option = self._option
        setting = self._target.get_issue_setting()
        mappings = MappingResolver(option, setting)

        issues: list[TargetIssue] = []
        number_mapping: dict[int, int] = {}
        # Diagnostics are only published once every issue was transformed
        stage_result = ImportResult()
        with self._server.new_client() as client:
            version_names = {
                str(version["id"]): version["name"]
                for version in pagination.list_all(client, self._versions_endpoint(), "versions", cancel=self._cancel)
            }
            category_names = {
                str(category["id"]): category["name"]
                for category in pagination.list_all(
                    client, self._categories_endpoint(), "issue_categories", cancel=self._cancel
                )
            }

            identities = IdentityResolver(client, self._target, self.identity_cache)
            replayer = HistoryReplayer(
                identities=identities,
                result=stage_result,
                category_names=category_names,
                version_names=version_names,
                category_field=option.category_field,
                api_endpoint=self._server.api_endpoint,
            )
            transformer = IssueTransformer(
                client=client,
                target=self._target,
                project=self._project,
                option=option,
                setting=setting,
                mappings=mappings,
                identities=identities,
                replayer=replayer,
                milestones=self.milestones,
                number_mapping=number_mapping,
                result=stage_result,
            )

            logger.info(f"Importing issues from project {self.redmine_project}...")
            pages = pagination.iter_pages(
                client,
                "/issues.json",
                "issues",
                params={"project_id": self.redmine_project_id, "status_id": "*", "sort": "id"},
                cancel=self._cancel,
            )
            for page in pages:
                for record in page:
                    pagination.check_cancelled(self._cancel)
                    issues.append(transformer.transform(record))
                logger.info(f"Imported {len(issues)} issues")

        self.number_mapping.update(number_mapping)
        self.result.merge_diagnostics(stage_result)
        if not option.dry_run:
            self._persist(issues)

        self.result.issues.extend(issues)
        if issues:
            self.result.issues_imported = True
        return issues

    def _persist(self, issues: list[TargetIssue]) -> None:
        for issue in issues:
            issue.description = renumber_references(issue.description, self.number_mapping)
            for comment in issue.comments:
                comment.content = renumber_references(comment.content, self.number_mapping) or comment.content

        for issue in issues:
            self._target.save_issue(issue)
            for name, value in issue.fields.items():
                self._target.persist_field(issue, name, value)
            for milestone in issue.schedules:
                self._target.persist_schedule(issue, milestone)
            for comment in issue.comments:
                self._target.persist_comment(issue, comment)
            for change in issue.changes:
                self._target.persist_change(issue, change)
        logger.info(f"Persisted {len(issues)} issues")

    def run(self) -> ImportResult:
        """Execute the complete import and return its result.

        Raises:
            MigrationError: If a fatal error (request failure, bad mapping) stops the run
        """
        mode = "dry run" if self.option is not None and self.option.dry_run else "import"
        logger.info(f"Starting Redmine {mode} of {self.redmine_project} into {self._project.name}")
        try:
            if self.option is None:
                self.build_import_option()
            self.import_versions()
            self.import_categories()
            self.import_issues()
        except ImportCancelledError:
            logger.warning("Import cancelled, work of the current stage was discarded")
            self.result.cancelled = True

        self.result.number_mapping = dict(self.number_mapping)
        return self.result
