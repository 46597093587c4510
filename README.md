# xpdiff

`xpdiff` holds the building blocks for working out what would change in a
live cluster if a set of Crossplane resources were applied, in the manner of
`kubectl diff`. Each resource is sent to the API server as a dry-run
server-side apply and the result is compared with what exists now. Composed
resources that a composite would no longer render are reported as removals.

The package has no third-party dependencies. Every client talks to the
cluster through objects you pass in, so any dynamic or discovery client with
the methods described below will do, including test doubles.

## Modules

### `xpdiff.type_converter`

- `GroupVersionKind(group, version, kind)` and
  `GroupVersionResource(group, version, resource)` are frozen dataclasses.
  `GroupVersionKind.group_version()` returns the `apiVersion` form, and
  `GroupVersionKind.from_api_version(api_version, kind)` builds one from it.
- `parse_group_version(text)` splits an `apiVersion` into `(group, version)`.
  `"v1"` is the core group. It raises `ValueError` on strings with more than
  one `/`.
- `gvk_of(obj)` reads the type of an unstructured object (a `dict`). An
  unparsable `apiVersion` gives an empty type.
- `APIResource(name, kind, namespaced)` and
  `APIResourceList(group_version, resources)` describe discovery data.
- `TypeConverter(discovery, logger)` resolves a kind to its plural resource
  name through `discovery.server_resources_for_group_version(group_version)`.
  `resource_name_for_gvk(gvk)` returns the name. `gvk_to_gvr(gvk)` returns a
  `GroupVersionResource` and caches it. Failures raise `DiscoveryError`.

### `xpdiff.schema_client`

`SchemaClient(dynamic, type_converter, logger)`:

- `get_crd(gvk)` fetches the CustomResourceDefinition named
  `<plural>.<group>` via `dynamic.get(gvr, namespace, name)`.
- `is_crd_required(gvk)` returns `False` for the core group, for `apps`,
  `batch`, `extensions`, `policy` and `autoscaling`, and for `*.k8s.io`
  groups other than `apiextensions.k8s.io`. It returns `True` for everything
  else. Answers are cached.
- `validate_resource(resource)` accepts every resource.

Failures raise `SchemaError`.

### `xpdiff.apply_client`

`ApplyClient(dynamic, type_converter, logger).dry_run_apply(obj)` calls
`dynamic.apply(gvr, namespace, name, obj, field_manager="crossplane-diff",
force=True, dry_run=["All"])` and returns what the server sends back.
Failures raise `ApplyError`.

### `xpdiff.resource_client`

`ResourceClient(dynamic, discovery, type_converter, logger)` offers:

- `get_resource(gvk, namespace, name)`
- `list_resources(gvk, namespace)`
- `get_resources_by_label(gvk, namespace, match_labels)`
- `gvks_for_group_kind(group, kind)`, which uses
  `discovery.server_preferred_resources()`
- `is_namespaced_resource(gvk)`

Listing uses `dynamic.list(gvr, namespace, label_selector=...)`.
`format_label_selector(match_labels)` renders `key=value` pairs in sorted
key order, joined by commas, or `"<none>"` when empty. Failures raise
`ResourceError`.

### `xpdiff.clients`

`Clients.create(dynamic, discovery, logger)` builds one `TypeConverter` and
the apply, resource and schema clients that share it. They are returned as
the fields `apply`, `resource`, `schema` and `type_converter`.

### `xpdiff.diff_calculator`

- `DiffType` is an enum with the members `ADDED`, `REMOVED`, `MODIFIED` and
  `EQUAL`.
- `make_diff_key(api_version, kind, name)` returns the key that identifies a
  diff.
- `ResourceNode(resource, children)` is a node of a composition tree.
- `DiffCalculator(apply_client, tree_client, resource_manager,
  diff_generator, logger)` takes collaborators that you provide:
  - `resource_manager` has `fetch_current_object(composite, desired)`, which
    returns `(current, is_new)`, and `update_owner_refs(composite, desired)`.
  - `tree_client` has `get_resource_tree(xr)`, which returns a
    `ResourceNode`.
  - `diff_generator(current, desired)` returns an object with `diff_type`,
    `current` and `key`. Either side may be `None`.

  The calculator has three methods:
  - `calculate_diff(composite, desired)` dry-run applies existing resources
    before diffing. It reuses the existing name when the desired object only
    has `generateName`.
  - `calculate_diffs(xr, composed)` returns the non-equal diffs for the XR and
    its composed resources, plus removals when the XR already exists.
    Composed resources with neither name nor `generateName` are skipped.
  - `calculate_removed_resource_diffs(xr, rendered)` walks the resource tree
    and returns removal diffs for annotated composed resources whose keys were
    not rendered.

  Failures raise `DiffCalculationError`. When composed resources fail, the
  exception's `diffs` and `errors` attributes hold the partial result.

### `xpdiff.cli`

- `build_parser()` returns an `argparse` parser with:
  - positional `files`
  - `-n/--namespace` (default `crossplane-system`)
  - `--no-color`
  - `--compact`
  - `--timeout` (a duration such as `30s`, `1m` or `1h30m`; default `1m`)
  - `--qps`
  - `--burst`
- `parse_args(argv)` turns arguments into a `DiffCommand`.
- `DiffCommand.init_rest_config(config)` returns a copy of a `RestConfig`
  with its rate limits resolved (see below).
- `DiffCommand.run(app_context, processor, loader, stdout)` runs these steps
  in order:
  1. `app_context.initialize(deadline, logger)`
  2. `loader.load()`
  3. `processor.initialize(deadline)`
  4. `processor.perform_diff(deadline, stdout, resources)`

  The deadline is a `time.monotonic()` value derived from the timeout. Each
  failure is raised as `CommandError` with a message that names the step:
  "cannot initialize client", "cannot load resources", "cannot initialize
  diff processor" or "unable to process one or more resources".

## Example

```python
from xpdiff.cli import parse_args
from xpdiff.diff_calculator import make_diff_key
from xpdiff.resource_client import format_label_selector
from xpdiff.type_converter import GroupVersionKind

gvk = GroupVersionKind.from_api_version("example.org/v1", "XR")
print(gvk.group_version())                        # example.org/v1
print(make_diff_key("example.org/v1", "XR", "test-xr"))
# example.org/v1/XR/test-xr
print(format_label_selector({"env": "dev", "app": "test"}))
# app=test,env=dev

command = parse_args(["xr.yaml", "-n", "foobar", "--timeout", "30s"])
print(command.namespace, command.timeout)         # foobar 30.0
```

## Rate limits

A `--qps` or `--burst` above zero always wins. Otherwise
`init_rest_config` keeps a non-zero value already in the `RestConfig`, and
falls back to 20 QPS and a burst of 30 when the value is zero.

## What the package does not do

- It installs no command-line program. `parse_args` only builds a
  `DiffCommand`; running it needs an application context, a diff processor
  and a loader supplied by the caller.
- It does not read YAML files, load kubeconfig or connect to a cluster. The
  dynamic and discovery clients are yours to provide.
- It does not render compositions, walk live resource trees, find current
  objects or produce line-by-line diffs. `DiffCalculator` delegates these to
  the resource manager, tree client and diff generator you give it.