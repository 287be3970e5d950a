# lvmlocal

`lvmlocal` is a set of building blocks for a storage driver that carves
node-local volumes out of LVM volume groups. It is a library. It builds and runs
LVM commands, parses storage-class parameters, works out scheduling weights and
capacity, and reports volume usage.

## Modules

### `lvmlocal.lvm`

This module holds the data classes `LVMVolume`, `LVMSnapshot` and `VolumeGroup`. It also
holds the functions that run the LVM2 tools through `subprocess`.

- Argument builders:
  - `build_create_args(vol, thin_pool_exists, thin_pool_size)` builds the `lvcreate` arguments for a volume.
  - `build_destroy_args` and `build_resize_args` build the `lvremove` and `lvextend` arguments. Passing `resizefs=True` to `build_resize_args` adds `-r`.
  - `build_snapshot_create_args` builds the arguments for a read-only snapshot.
  - `build_snapshot_destroy_args` builds the arguments that remove a snapshot.
- Path and name helpers:
  - `volume_dev_path` gives the `/dev/mapper/<vg>-<lv>` path, with each hyphen in a name doubled.
  - `lvm_snapshot_name` strips a leading `snapshot-` from a name.
  - `volume_exists` and `snapshot_exists` check whether the device node is present.
- Operations:
  - `create_volume` and `destroy_volume` skip the work when the volume already exists, or is absent.
  - `resize_volume` extends a volume.
  - `create_snapshot` and `destroy_snapshot` create and remove snapshots.
- Volume groups:
  - `reload_metadata_cache` runs `pvscan --cache`.
  - `list_volume_groups` runs `vgs` with JSON output.
  - `decode_vgs_json` and `parse_volume_group` turn that report into `VolumeGroup` values. Sizes in those values are in bytes.
- Thin pools:
  - `thin_pool_exists` reports whether a thin pool exists.
  - `vg_free_size` gives the free space of a volume group.
  - `thin_pool_size(vg_free, volsize)` gives the volume size. When the group has less free space than that, it gives the free space minus 256Mi instead.

A command that fails raises `ExecError`. The error carries the command's combined output in `.output` and the underlying error in `.err`.

### `lvmlocal.iolimit`

- `extract_rate_values` parses `"<vg-prefix>:<rate>"` entries into a dict. A malformed entry raises `ValueError`.
- `IOLimiter` holds per-GB read/write IOPS and bandwidth rates.
  - `configure(...)` sets the rates, but only the first time it is called.
  - `riops_per_gb`, `wiops_per_gb`, `rbps_per_gb` and `wbps_per_gb` look up a rate. They try the exact volume group name first, then a key that the name starts with, and return 0 otherwise.
  - `limits_for(vg_name, capacity_bytes)` returns an `IORateLimits` value. Each rate is scaled by the capacity, rounded up to whole GiB.

### `lvmlocal.params`

- `VolumeParams.from_parameters` parses storage-class parameters:
  - Keys are matched case-insensitively.
  - `volgroup` takes precedence over `vgpattern`, and becomes the pattern `^<volgroup>$`.
  - The defaults are `scheduler="CapacityWeighted"`, `shared="no"` and `thinprovision="no"`.
  - An invalid pattern raises `ValueError`.
- `volume_weighted_map` counts `LVMVolume` objects per owner node.
- `capacity_weighted_map` sums their capacities per owner node.
- `node_map(scheduler, volumes, pattern)` picks one of the two. Any scheduler other than `VolumeWeighted` uses capacity weighting.

### `lvmlocal.endpoint`

- `parse_endpoint` splits `unix://…` or `tcp://…` into a protocol and an address. Any other form raises `ValueError`.
- `is_informative_log` returns `False` for the frequently polled `NodeGetVolumeStats` and `NodeGetCapabilities` methods.
- `StatusCode` is an enum of the gRPC status codes.
- `CSIError` is an exception that carries a `StatusCode`.

### `lvmlocal.capacity`

- `rounded_capacity(size)` rounds a size up to whole Gi when it is above 1Gi, and to whole Mi otherwise.
- The module defines the constants `MB`, `GB`, `Mi` and `Gi`.
- `max_free_capacity(volume_groups, pattern)` returns the largest free size among the matching groups. It does not sum them.
- `filter_nodes_by_topology(nodes, segments)` returns the names of the nodes whose labels carry every segment.
- `label_index_name` and `label_index_values` are label-index helpers.

### `lvmlocal.controller`

- `AccessMode` and `ControllerCapability` are enums.
- `is_supported_access_mode` and `valid_volume_capabilities` check access modes. Only `SINGLE_NODE_WRITER` is supported.
- `controller_capabilities()` lists what the controller offers: create/delete volume, expand volume, create/delete snapshot and get capacity.
- `validate_request` raises `CSIError(INVALID_ARGUMENT)` for any other capability.
- `snapshot_id(volume, snap)` builds `volume@snap`.
- `parse_snapshot_id` splits such an identifier back into its parts. It raises `CSIError(INTERNAL)` when the identifier does not have exactly two parts.

### `lvmlocal.stats`

- `volume_stats(volume_id, path)` returns byte usage and inode usage as `VolumeUsage` values, from `os.statvfs`. It raises `CSIError` when:
  - the volume id or path is missing (`INVALID_ARGUMENT`),
  - the path is not a mount point (`NOT_FOUND`),
  - the statvfs call fails (`INTERNAL`).
- `pod_lv_info(volume_context)` reads the pod uid and the volume group into a `PodLVInfo`. It raises `ValueError` when either key is missing.
- `mount_options(mount_flags, readonly)` appends `ro` for read-only mounts.

## Example

```python
from lvmlocal.capacity import rounded_capacity
from lvmlocal.lvm import LVMVolume, build_create_args
from lvmlocal.params import VolumeParams

params = VolumeParams.from_parameters({"VolGroup": "lvmvg", "thinProvision": "yes"})
assert params.vg_pattern.match("lvmvg")
assert params.thin_provision == "yes"

size = rounded_capacity(5 * 1000 * 1000)   # 5242880 (5Mi)

vol = LVMVolume(name="pvc-1", vol_group="lvmvg", capacity=str(size))
print(build_create_args(vol, thin_pool_exists=False, thin_pool_size=""))
# ['-L', '5242880b', '-n', 'pvc-1', 'lvmvg']
```

## What this package does not do

This package has no gRPC server and no command-line program. It does not store
or watch volume, snapshot or node records anywhere; callers pass those in as
plain objects. It does not mount or format filesystems. It does not apply IO
limits to cgroups. `IOLimiter` only computes the limits.

## Installation

```
pip install .
```

The functions in `lvmlocal.lvm` that run commands need the LVM2 tools on `PATH`
and enough privileges to use them.

## Tests

```
pip install .[test]
pytest
```