"""Mock recipe site for testing."""

from .app import RECIPES, create_app, create_recipe_site, render_recipe_page

__all__ = ["RECIPES", "create_app", "create_recipe_site", "render_recipe_page"]
