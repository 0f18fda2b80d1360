"""Tests for the command-line entry point."""

import sys

import pytest
from vglut3_report.cli import main


def local_args(paths, output):
    return [
        '--counts', str(paths['counts']),
        '--samples', str(paths['samples']),
        '--genes', str(paths['genes']),
        '--output', str(output),
    ]


class TestMain:

    @pytest.mark.bioconductor
    def test_local_run(self, local_tables, tmp_path):
        output = tmp_path / 'out' / 'report.html'

        assert main(local_args(local_tables, output)) == 0
        assert output.exists()
        assert 'References' in output.read_text(encoding='utf-8')

    @pytest.mark.bioconductor
    def test_config_file(self, local_tables, tmp_path):
        config = tmp_path / 'config.yaml'
        config.write_text("report:\n  title: Cochlea run\n")
        output = tmp_path / 'report.html'

        assert main(local_args(local_tables, output) + ['--config', str(config)]) == 0
        assert 'Cochlea run' in output.read_text(encoding='utf-8')

    def test_counts_without_samples(self, local_tables, tmp_path):
        assert main(['--counts', str(local_tables['counts'])]) == 3

    def test_acquisition_failure(self, monkeypatch, tmp_path):
        monkeypatch.setitem(sys.modules, 'rpy2.robjects', None)

        assert main(['--project', 'SRP000001', '--output', str(tmp_path / 'r.html')]) == 2

    def test_schema_error(self, raw_set, tmp_path, table_writer):
        samples = raw_set.samples.copy()
        samples['sra.sample_attributes'] = samples['sra.sample_attributes'].str.replace(
            'genotype;;', 'strain;;'
        )
        paths = table_writer(raw_set.with_samples(samples), tmp_path)

        assert main(local_args(paths, tmp_path / 'r.html')) == 3

    def test_no_samples_pass(self, local_tables, tmp_path):
        config = tmp_path / 'config.yaml'
        config.write_text("filtering:\n  min_assigned_gene_prop: 0.99\n")

        args = local_args(local_tables, tmp_path / 'r.html') + ['--config', str(config)]
        assert main(args) == 4

    def test_design_failure(self, local_tables, tmp_path):
        config = tmp_path / 'config.yaml'
        config.write_text("model:\n  coefficient_of_interest: sex\n")

        args = local_args(local_tables, tmp_path / 'r.html') + ['--config', str(config)]
        assert main(args) == 5

    def test_statistics_unavailable(self, local_tables, monkeypatch, tmp_path):
        monkeypatch.setitem(sys.modules, 'rpy2.robjects', None)

        assert main(local_args(local_tables, tmp_path / 'r.html')) == 6
        assert not (tmp_path / 'r.html').exists()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
