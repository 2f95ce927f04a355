"""Signals that keep one inventory item per catalogue product."""

from __future__ import annotations

from django.db.models.signals import post_save
from django.dispatch import receiver

from modules.inventory.repositories.django_repository import InventoryDjangoRepository
from modules.products.models import Product


@receiver(post_save, sender=Product)
def _create_inventory_item(sender, instance: Product, created: bool, **kwargs) -> None:
    if created and not kwargs.get("raw", False):
        InventoryDjangoRepository().create_for_product(instance)
