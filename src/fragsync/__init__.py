from .exceptions import (
    FragsyncError, OptionsError, MalformedManifestError, MultipleFilesPerComponentError,
    VersionSkewError, StructuralConflictError, PatchConflictError,
)
from .options import ManifestOptions, merge_overrides, parse_options_header, build_options_header
from .model import Manifest, parse_manifest, load_manifest, serialize_manifest, write_manifest
from .patch import PatchTracker, create_placeholder_files
from .reconcile import (
    Reconciler, ReconcileReport, UpdateResult,
    create_manifest, update_manifest, update_file, update_output_path,
)
from .diff import texts_differ, files_differ

__all__ = [
    "FragsyncError", "OptionsError", "MalformedManifestError", "MultipleFilesPerComponentError",
    "VersionSkewError", "StructuralConflictError", "PatchConflictError",
    "ManifestOptions", "merge_overrides", "parse_options_header", "build_options_header",
    "Manifest", "parse_manifest", "load_manifest", "serialize_manifest", "write_manifest",
    "PatchTracker", "create_placeholder_files",
    "Reconciler", "ReconcileReport", "UpdateResult",
    "create_manifest", "update_manifest", "update_file", "update_output_path",
    "texts_differ", "files_differ",
]
