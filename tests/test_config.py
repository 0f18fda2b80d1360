"""Unit tests for configuration loading."""

from pathlib import Path

import pytest
from pydantic import ValidationError
from vglut3_report import config as config_module
from vglut3_report.config import Config, get_config, set_config


class TestConfig:

    def test_defaults(self):
        cfg = Config()

        assert cfg.filtering.min_assigned_gene_prop == 0.6
        assert cfg.report.heatmap_top_n == 50
        assert cfg.attributes.genotype.levels == ['wildtype', 'Vglut3-/-']
        assert cfg.model.covariates == ['genotype', 'age', 'location', 'assigned_gene_prop']
        assert cfg.model.coefficient_of_interest == 'genotype'
        assert cfg.report.bibliography.exists()

    def test_yaml_round_trip(self, tmp_path):
        cfg = Config()
        cfg.study.project = 'SRP123456'
        cfg.report.gene_notes = {'Slc17a8': 'encodes Vglut3'}
        path = tmp_path / 'config.yaml'

        cfg.to_yaml(path)
        loaded = Config.from_yaml(path)

        assert loaded.model_dump() == cfg.model_dump()

    def test_partial_yaml(self, tmp_path):
        path = tmp_path / 'config.yaml'
        path.write_text("filtering:\n  min_assigned_gene_prop: 0.5\n")

        cfg = Config.from_yaml(path)

        assert cfg.filtering.min_assigned_gene_prop == 0.5
        assert cfg.filtering.min_count == 10

    def test_example_config(self):
        cfg = Config.from_yaml(Path(__file__).parents[1] / 'examples' / 'config.yaml')

        assert 'Slc17a8' in cfg.report.gene_notes
        assert cfg.report.heatmap_top_n == 50

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv('VGLUT3_STUDY__PROJECT', 'SRP654321')

        assert Config().study.project == 'SRP654321'

    def test_invalid_method(self):
        with pytest.raises(ValidationError):
            Config(model={'normalization_method': 'RLE'})

    def test_invalid_threshold(self):
        with pytest.raises(ValidationError):
            Config(filtering={'min_assigned_gene_prop': 1.5})

    def test_global_config(self, monkeypatch):
        monkeypatch.setattr(config_module, '_config', None)

        default = get_config()
        assert get_config() is default

        custom = Config(report={'title': 'Custom'})
        set_config(custom)
        assert get_config().report.title == 'Custom'


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
