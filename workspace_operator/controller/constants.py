"""Well-known API identifiers, labels, annotations and finalizers."""

API_GROUP = "workspace.jupyter.org"
API_VERSION = "v1alpha1"

# Set on a Workspace to the namespace whose template satisfied resolution.
LABEL_TEMPLATE_NAMESPACE = f"{API_GROUP}/template-namespace"

# Held on a WorkspaceTemplate while at least one workspace references it.
FINALIZER_TEMPLATE_PROTECTION = f"{API_GROUP}/template-protection"

# Reverse index on a WorkspaceTemplate: JSON array of "<namespace>/<name>"
# workspace keys, written in the same update as the finalizer.
ANNOTATION_REFERENCED_BY = f"{API_GROUP}/referenced-by"

DEFAULT_TEMPLATE_NAMESPACE = "jupyter-k8s-shared"
