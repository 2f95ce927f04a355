import django.db.models.deletion
import django.utils.timezone
import uuid6
from django.db import migrations, models

MOVEMENT_TYPES = [
    ("purchase", "Purchase"),
    ("sale", "Sale"),
    ("return", "Return"),
    ("damage", "Damage"),
    ("adjustment", "Adjustment"),
]


def base_fields():
    return [
        (
            "id",
            models.UUIDField(
                default=uuid6.uuid7,
                editable=False,
                primary_key=True,
                serialize=False,
            ),
        ),
        (
            "created_at",
            models.DateTimeField(default=django.utils.timezone.now, editable=False),
        ),
        ("updated_at", models.DateTimeField(auto_now=True)),
    ]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("products", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="InventoryItem",
            fields=[
                *base_fields(),
                (
                    "current_stock",
                    models.PositiveIntegerField(default=0, editable=False),
                ),
                ("minimum_stock_level", models.PositiveIntegerField(default=0)),
                (
                    "maximum_stock_level",
                    models.PositiveIntegerField(blank=True, null=True),
                ),
                ("reorder_quantity", models.PositiveIntegerField(default=1)),
                (
                    "location",
                    models.CharField(blank=True, default="", max_length=100),
                ),
                ("version", models.PositiveIntegerField(default=0, editable=False)),
                (
                    "product",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="inventory",
                        to="products.product",
                    ),
                ),
            ],
            options={
                "db_table": "inventory_items",
                "ordering": ["current_stock", "product__name"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(current_stock__gte=0),
                        name="inventory_items_stock_non_negative",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(reorder_quantity__gt=0),
                        name="inventory_items_reorder_positive",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(maximum_stock_level__isnull=True)
                        | models.Q(
                            maximum_stock_level__gte=models.F("minimum_stock_level")
                        ),
                        name="inventory_items_max_gte_min",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="StockMovement",
            fields=[
                *base_fields(),
                ("sequence", models.PositiveIntegerField()),
                (
                    "movement_type",
                    models.CharField(choices=MOVEMENT_TYPES, max_length=20),
                ),
                ("quantity_delta", models.IntegerField()),
                ("previous_stock", models.PositiveIntegerField()),
                ("resulting_stock", models.PositiveIntegerField()),
                ("reason", models.CharField(blank=True, default="", max_length=255)),
                ("actor", models.CharField(default="system", max_length=150)),
                (
                    "idempotency_key",
                    models.CharField(
                        blank=True, max_length=255, null=True, unique=True
                    ),
                ),
                (
                    "inventory_item",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="movements",
                        to="inventory.inventoryitem",
                    ),
                ),
            ],
            options={
                "db_table": "stock_movements",
                "ordering": ["inventory_item", "sequence"],
                "indexes": [
                    models.Index(
                        fields=["inventory_item", "-created_at"],
                        name="stock_mov_item_created_idx",
                    ),
                    models.Index(
                        fields=["movement_type"], name="stock_mov_type_idx"
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("inventory_item", "sequence"),
                        name="stock_movements_item_sequence_uniq",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(resulting_stock__gte=0),
                        name="stock_movements_resulting_non_negative",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("quantity_delta", 0), _negated=True),
                        name="stock_movements_delta_non_zero",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            resulting_stock=models.F("previous_stock")
                            + models.F("quantity_delta")
                        ),
                        name="stock_movements_resulting_matches_delta",
                    ),
                ],
            },
        ),
    ]
