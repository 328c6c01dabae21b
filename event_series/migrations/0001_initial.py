import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models

import model_utils.fields


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("organizations", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="EventSeries",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                (
                    "created",
                    model_utils.fields.AutoCreatedField(
                        db_index=True,
                        default=django.utils.timezone.now,
                        editable=False,
                        verbose_name="created",
                    ),
                ),
                (
                    "modified",
                    model_utils.fields.AutoLastModifiedField(
                        db_index=True,
                        default=django.utils.timezone.now,
                        editable=False,
                        verbose_name="modified",
                    ),
                ),
                ("slug", models.SlugField(max_length=255)),
                ("name", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True)),
                ("time_zone", models.CharField(default="UTC", max_length=64)),
                (
                    "organization",
                    models.ForeignKey(
                        help_text="The organization this model is associated with. Queries should use the `organization` field.",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="+",
                        to="organizations.organization",
                    ),
                ),
            ],
            options={
                "verbose_name_plural": "event series",
            },
        ),
        migrations.CreateModel(
            name="Event",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1,
                        help_text="Incremented on every versioned write; stale writers are rejected.",
                        verbose_name="version",
                    ),
                ),
                (
                    "created",
                    model_utils.fields.AutoCreatedField(
                        db_index=True,
                        default=django.utils.timezone.now,
                        editable=False,
                        verbose_name="created",
                    ),
                ),
                (
                    "modified",
                    model_utils.fields.AutoLastModifiedField(
                        db_index=True,
                        default=django.utils.timezone.now,
                        editable=False,
                        verbose_name="modified",
                    ),
                ),
                ("slug", models.SlugField(max_length=255)),
                ("name", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True)),
                (
                    "type",
                    models.CharField(
                        choices=[
                            ("in-person", "In Person"),
                            ("online", "Online"),
                            ("hybrid", "Hybrid"),
                        ],
                        default="in-person",
                        max_length=20,
                    ),
                ),
                ("location", models.CharField(blank=True, max_length=255)),
                ("location_online", models.URLField(blank=True, max_length=500)),
                ("max_attendees", models.PositiveIntegerField(blank=True, null=True)),
                ("require_approval", models.BooleanField(default=False)),
                ("approval_question", models.TextField(blank=True)),
                ("allow_waitlist", models.BooleanField(default=False)),
                ("categories", models.JSONField(blank=True, default=list)),
                ("start_date", models.DateTimeField()),
                ("end_date", models.DateTimeField(blank=True, null=True)),
                ("time_zone", models.CharField(default="UTC", max_length=64)),
                ("is_recurring", models.BooleanField(default=False)),
                (
                    "recurrence_rule",
                    models.JSONField(
                        blank=True,
                        help_text="Persisted recurrence rule (frequency, interval, count, until, by_* fields)",
                        null=True,
                    ),
                ),
                (
                    "recurrence_exceptions",
                    models.JSONField(
                        blank=True,
                        default=list,
                        help_text="ISO-8601 instants excluded from the recurrence pattern",
                    ),
                ),
                (
                    "original_occurrence_date",
                    models.DateTimeField(
                        blank=True,
                        help_text="For materialized occurrences, the occurrence slot this event fills",
                        null=True,
                    ),
                ),
                (
                    "original_date",
                    models.DateTimeField(
                        blank=True,
                        help_text="For split points, the boundary date from which this event governs the series",
                        null=True,
                    ),
                ),
                ("is_recurrence_split_point", models.BooleanField(default=False)),
                (
                    "organization",
                    models.ForeignKey(
                        help_text="The organization this model is associated with. Queries should use the `organization` field.",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="+",
                        to="organizations.organization",
                    ),
                ),
                (
                    "parent_event",
                    models.ForeignKey(
                        blank=True,
                        help_text="For split points, the root template of the series chain",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="child_events",
                        to="event_series.event",
                    ),
                ),
                (
                    "series",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="events",
                        to="event_series.eventseries",
                    ),
                ),
            ],
        ),
        migrations.AddField(
            model_name="eventseries",
            name="template_event",
            field=models.ForeignKey(
                blank=True,
                help_text="The event holding the shape and recurrence shared by every occurrence",
                null=True,
                on_delete=django.db.models.deletion.SET_NULL,
                related_name="+",
                to="event_series.event",
            ),
        ),
        migrations.AddConstraint(
            model_name="eventseries",
            constraint=models.UniqueConstraint(
                fields=("organization", "slug"), name="unique_event_series_slug_per_organization"
            ),
        ),
        migrations.AddConstraint(
            model_name="event",
            constraint=models.UniqueConstraint(
                fields=("organization", "slug"), name="unique_event_slug_per_organization"
            ),
        ),
        migrations.AddConstraint(
            model_name="event",
            constraint=models.UniqueConstraint(
                condition=models.Q(("original_occurrence_date__isnull", False)),
                fields=("series", "original_occurrence_date"),
                name="unique_materialized_occurrence_per_series",
            ),
        ),
    ]
