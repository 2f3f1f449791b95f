"""Module for generation of stuff from configurations"""
import os.path
import sys
import configobj
import validate

from .exceptions import CfgException
from .mpi import ProcessGroup

SPEC_FILE = os.path.join(os.path.dirname(__file__), "configspec")


def get_cfg(cfg_file_name=None, kvargs={}, err=sys.stderr):
    """ Parse a config

    :arg cfg_file_name:
        name of the configuration file; if `None`, only defaults are used
    :arg kvargs:
        overrides as dictionary of dotted keys, e.g. `{"MPI.root": "1"}`
    :arg err:
        stream receiving the diagnostics
    :raises CfgException:
        for unknown or invalid entries
    """
    with open(SPEC_FILE, "r") as configspec:
        speclines = configspec.readlines()
    if cfg_file_name is None:
        cfg = configobj.ConfigObj(configspec=speclines, indent_type="\t")
    else:
        with open(cfg_file_name, "r") as infile:
            cfg = configobj.ConfigObj(infile=infile, configspec=speclines,
                                      indent_type="\t")

    # update command line parameters
    for key, value in kvargs.items():
        groups = key.split(".")
        parent = cfg
        for group in groups[:-1]:
            parent = parent.setdefault(group, {})
        parent[groups[-1]] = value

    validator = validate.Validator()
    valid = cfg.validate(validator, copy=True, preserve_errors=True)

    try:
        pairs = configobj.get_extra_values(cfg)
    except AttributeError:
        print("WARNING: cannot check unknown entries in config", file=err)
        pairs = False

    if pairs:
        print("error: unknown entries in config: %s" % cfg_file_name, file=err)
        print(">>>", ", ".join(".".join(e[0] + (e[1],)) for e in pairs),
              file=err)
        raise CfgException()

    if valid is not True:
        print("error: invalid entries in config: %s" % cfg_file_name, file=err)
        print(">>>", ", ".join(_describe_error(sections, key, error) for
                               sections, key, error
                               in configobj.flatten_errors(cfg, valid)),
              file=err)
        raise CfgException()

    return cfg

def group_from_cfg(cfg, comm=None):
    """ Set up the process group as configured in the [MPI] section """
    mpi_cfg = cfg["MPI"]
    return ProcessGroup(comm, root=mpi_cfg["root"],
                        check_collectives=mpi_cfg["check_collectives"],
                        debug=mpi_cfg["debug"])

# --------- helper routines -----------

def _describe_error(sections, key, error):
    name = ".".join(sections + ([key] if key is not None else []))
    if error is False:
        return name + " (missing)"
    return "%s (%s)" % (name, error)
