"""Public package interface for the combine-two-things sandbox."""

from .api import Alchemy
from .store import Concept, Inventory, Recipe, RecipeCache
from .workspace import Workspace, WorkspaceToken

__all__ = ["Alchemy", "Concept", "Inventory", "Recipe", "RecipeCache", "Workspace", "WorkspaceToken"]
