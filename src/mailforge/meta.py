"""Package metadata for mailforge."""

__app_name__ = "mailforge"
__version__ = "0.3.0"
__author__ = "mailforge contributors"
__email__ = "maintainers@mailforge.dev"
__url__ = "https://github.com/mailforge/mailforge"
__description__ = "Fluent email composition and SMTP delivery helpers"
__license_type__ = "MIT"

__all__ = [
    "__app_name__",
    "__author__",
    "__description__",
    "__email__",
    "__license_type__",
    "__url__",
    "__version__",
]
