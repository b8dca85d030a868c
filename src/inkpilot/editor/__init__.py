"""Document model, text anchoring, paragraph patches and edit application."""
