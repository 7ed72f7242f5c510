"""A test for blocktensors.tools.params."""
# Copyright (C) TeNPy Developers, GNU GPLv3

import logging

import pytest

from blocktensors.tools.params import Config, asConfig


def example_function(example_pars, keys=['a', 'b', 'c']):
    """example function using a parameter dictionary."""
    for default, k in enumerate(keys):
        p_k = example_pars.get(k, default)
        print("read out parameter {k!r} = {p_k!r}".format(k=k, p_k=p_k))


def test_parameters():
    pars = Config(dict(), "Test empty")
    example_function(pars)
    pars = dict(
        a=None,
        b=2.5,
        d="dict-style access",
        e="non-used",
    )
    config = asConfig(pars, "Test parameters")
    assert asConfig(config, "other name") is config
    assert config.options is pars
    example_function(config)
    assert config['d'] == "dict-style access"  # reads out d
    assert pars['c'] == 2  # default is stored
    assert len(config) == 5
    assert 'not_there' not in config

    # test .get(..., expect_types) argument
    _ = config.get('a', 4, NotADirectoryError)  # value of None always passes
    _ = config.get('a', 12, [NotADirectoryError, dict])  # value of None always passes
    _ = config.get('b', 5, 'real')
    with pytest.warns(UserWarning, match='Invalid type for key'):
        _ = config.get('b', 5, int)
    _ = config.get('uses_default_value', 5.3, 'real')
    with pytest.warns(UserWarning, match='Invalid type for key'):
        _ = config.get('uses_default_value', 5.3, 'int')
    _ = config.get('b', 5, [float, dict])
    with pytest.warns(UserWarning, match='Invalid type for key'):
        _ = config.get('b', 5, [int, dict])
    with pytest.raises(ValueError):
        config.get('b', 5, ['not a type'])
    with pytest.raises(ValueError):
        config.get('b', 5, 'float')

    # test warnings on deletion
    assert len(config.unused) == 1
    # the match is a bit ugly, since brackets have special meaning in regex.
    # the expected message is
    #  "unused option ['e'] for config Test parameters"
    with pytest.warns(UserWarning, match=r"unused option \['e'\] for config Test parameters"):
        del config
    del pars


def test_setting_and_deleting():
    config = Config({'chi_max': 10}, 'trunc_params')
    config['svd_min'] = 1.e-10
    config['w'] = 1
    assert config.unused == {'chi_max', 'svd_min', 'w'}
    assert config['chi_max'] == 10
    del config['svd_min']
    assert sorted(config) == ['chi_max', 'w']
    assert 'trunc_params' in str(config)
    assert repr(config) == "Config(<2 options>, 'trunc_params')"
    with pytest.warns(UserWarning, match=r"unused option \['w'\] for config trunc_params"):
        config.warn_unused()
    assert len(config.unused) == 0
    config['x'] = 2
    config['y'] = 3
    config['z'] = 4
    config.touch('x')
    with pytest.warns(UserWarning, match=r"unused options for config trunc_params:\n\['y', 'z'\]"):
        config.__del__()


def test_logging(caplog):
    config = Config({'chi_max': 10}, 'svd')
    with caplog.at_level(logging.DEBUG, logger='blocktensors.tools.params'):
        config.get('chi_max', 5)
        config.get('chi_max', 5)  # logged only once
        config.get('svd_min', 1.e-12)
    messages = [r.getMessage() for r in caplog.records]
    assert messages == ["svd: reading 'chi_max'=10", "svd: reading 'svd_min'=1e-12 (default)"]
    assert [r.levelname for r in caplog.records] == ['INFO', 'DEBUG']
