"""Exceptions for fragsync."""


class FragsyncError(Exception):
    """Base class for all fragsync errors."""


class OptionsError(FragsyncError):
    """Raised when a configuration value is invalid (bad regex, empty group...)."""


class MalformedManifestError(FragsyncError):
    """Raised when an input document is not a manifest fragsync can update.

    The usual cause is a missing options header: the first child of the
    root element must be the comment holding ``<CommandLineOptions>``.
    """


class MultipleFilesPerComponentError(MalformedManifestError):
    """Raised for legacy manifests that put several files in one Component."""


class VersionSkewError(FragsyncError):
    """Raised when a manifest declares a format version newer than supported."""


class StructuralConflictError(FragsyncError):
    """Raised for duplicate directory names, duplicate sources, bad mold files."""


class PatchConflictError(FragsyncError):
    """Raised when a file recorded as removed reappears with real content.

    The component was marked ``Transitive`` on an earlier run.  Restoring
    the file is not resolved automatically; purge the removal record from
    the manifest by hand first.
    """
