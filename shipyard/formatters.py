"""
Terraform-style output formatting for Shipyard releases.

This module renders plans, action outcomes, drift and Releases with the
familiar Terraform symbols.
"""

from typing import List, Optional

from rich.console import Console
from rich.table import Table
from rich.text import Text

from .assembly.differ import DriftReport, DriftType, Plan, ResourceChange
from .models import ActionRecord, ActionStatus, ActionType, Release, ReleasePhase


class TerraformStyleFormatter:
    """
    Terraform-style formatter for Shipyard operations.

    Symbols:
    - `+` create
    - `~` update
    - `-` delete
    - `-/+` delete and re-create after a type change
    """

    def __init__(self, console: Optional[Console] = None):
        """Initialize formatter with Rich console."""
        self.console = console or Console()

        self.colors = {
            'create': 'green',
            'update': 'yellow',
            'delete': 'red',
            'replace': 'magenta',
            'no_change': 'dim',
            'header': 'bold blue',
            'attribute': 'cyan',
            'comment': 'dim',
        }

        self.symbols = {
            'create': '+',
            'update': '~',
            'delete': '-',
            'replace': '-/+',
            'no_change': ' ',
        }

    def _operation(self, change: ResourceChange) -> str:
        if change.replacement:
            return 'replace'
        return change.action.value

    def format_plan(self, plan: Plan, show_unchanged: bool = False) -> str:
        """
        Format a plan showing what an apply would do.

        A replacement appears once, as ``-/+``, at the position of its create.

        Args:
            plan: Plan from the differ
            show_unchanged: Also list resources that need no action

        Returns:
            Formatted plan output string
        """
        output = Text()

        if plan.is_empty():
            output.append("No changes. Infrastructure is up-to-date.\n", style=self.colors['header'])
            return str(output)

        output.append("Shipyard will perform the following actions:\n\n", style=self.colors['header'])

        for change in plan.changes:
            if change.action == ActionType.DELETE and change.replacement:
                continue
            if change.action == ActionType.NO_CHANGE and not show_unchanged:
                continue

            operation = self._operation(change)
            color = self.colors[operation]
            output.append(f"  {self.symbols[operation]} {change.resource_id}\n", style=color)

            for path, diff in change.field_diffs.items():
                output.append(
                    f"      {path}: {diff['current']!r} => {diff['desired']!r}\n",
                    style=self.colors['attribute'],
                )

        summary = plan.summary()
        output.append(
            f"\nPlan: {summary['create']} to add, {summary['update']} to change, "
            f"{summary['delete']} to destroy.\n",
            style=self.colors['header'],
        )
        return str(output)

    def format_actions(self, records: List[ActionRecord]) -> str:
        """
        Format the recorded outcome of every planned action.

        Args:
            records: Action records of a Release

        Returns:
            Formatted action output string
        """
        output = Text()

        for record in records:
            if record.status == ActionStatus.SUCCEEDED:
                symbol, color = '✓', self.colors['create']
            elif record.status == ActionStatus.FAILED:
                symbol, color = '✗', self.colors['delete']
            else:
                symbol, color = '⋯', self.colors['update']

            output.append(f"  {symbol} {record.action.value} {record.resource_id}: ", style=color)
            output.append(f"{record.status.value}\n")
            if record.error and record.status != ActionStatus.SUCCEEDED:
                output.append(f"    {record.error}\n", style=self.colors['comment'])

        succeeded = sum(1 for r in records if r.status == ActionStatus.SUCCEEDED)
        failed = sum(1 for r in records if r.status == ActionStatus.FAILED)
        skipped = sum(1 for r in records if r.status == ActionStatus.SKIPPED)
        output.append(
            f"\nActions: {succeeded} succeeded, {failed} failed, {skipped} skipped.\n",
            style=self.colors['header'],
        )
        return str(output)

    def format_drift(self, reports: List[DriftReport]) -> str:
        """Format drift found between recorded and live state."""
        output = Text()

        if not reports:
            output.append("No drift detected.\n", style=self.colors['create'])
            return str(output)

        output.append("Shipyard detected drift:\n\n", style=self.colors['update'])
        for report in reports:
            if report.drift_type == DriftType.MISSING:
                output.append(f"  - {report.resource_id}: missing\n", style=self.colors['delete'])
                continue
            output.append(f"  ~ {report.resource_id}\n", style=self.colors['update'])
            for path, diff in report.field_diffs.items():
                output.append(
                    f"      {path}: recorded {diff['current']!r}, live {diff['desired']!r}\n",
                    style=self.colors['attribute'],
                )
        return str(output)

    def format_release(self, release: Release) -> str:
        """
        Format one Release with its recorded actions.

        Returns:
            Formatted release output string
        """
        output = Text()

        phase_color = {
            ReleasePhase.SUCCEEDED: self.colors['create'],
            ReleasePhase.FAILED: self.colors['delete'],
        }.get(release.phase, self.colors['update'])

        output.append(f"Release {release.describe()}\n", style=self.colors['header'])
        output.append("  Phase:    ")
        output.append(f"{release.phase.value}\n", style=phase_color)
        output.append(f"  Created:  {release.create_time.strftime('%Y-%m-%d %H:%M:%S')}\n")
        output.append(f"  Modified: {release.modified_time.strftime('%Y-%m-%d %H:%M:%S')}\n")
        spec_count = len(release.spec.resources) if release.spec is not None else 0
        output.append(f"  Spec:     {spec_count} resources\n")
        output.append(f"  State:    {len(release.state.resources)} resources\n")

        if release.error:
            output.append(f"  Error:    {release.error}\n", style=self.colors['delete'])

        if release.actions:
            output.append("\n")
            output.append(self.format_actions(release.actions))

        return str(output)

    def releases_table(self, releases: List[Release]) -> Table:
        """Rich table with one row per Release."""
        table = Table(title="Releases")
        table.add_column("Revision", justify="right")
        table.add_column("Phase", no_wrap=True)
        table.add_column("Created")
        table.add_column("Modified")
        table.add_column("Spec", justify="right")
        table.add_column("State", justify="right")

        for release in releases:
            table.add_row(
                str(release.revision),
                release.phase.value,
                release.create_time.strftime("%Y-%m-%d %H:%M"),
                release.modified_time.strftime("%Y-%m-%d %H:%M"),
                str(len(release.spec.resources)) if release.spec is not None else "-",
                str(len(release.state.resources)),
            )
        return table
