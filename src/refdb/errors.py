"""Exception hierarchy for the reference database updater."""


class RefdbError(Exception):
    """Base class for every error the updater reports."""


class BuildError(RefdbError):
    """Building the staging database failed."""


class DatabaseError(BuildError):
    """The database store rejected an operation or failed validation."""


class SourceError(BuildError):
    """A document in the source tree is missing, undecodable or malformed."""


class PublishError(RefdbError):
    """Swapping the staging database into the live path failed."""


class NotifyError(RefdbError):
    """The failure report could not be handed to the mail relay."""


class CLIArgumentError(RefdbError):
    """The command line could not be parsed."""
