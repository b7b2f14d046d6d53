import json
from types import SimpleNamespace

import pytest

import matcher
from grouping import create_dinner_tables
from matcher import generate_coverage_report, main, review_tables_ai
from profiles import generate_sample_profiles
from tests.helpers import make_profiles


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ('OPENAI_API_KEY', 'TABLE_MIN_SIZE', 'TABLE_MAX_SIZE'):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setattr(matcher, '_client', None)


class FakeCompletions:
    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def fake_client(completions):
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


# -------------------------------
# Coverage report
# -------------------------------

def test_coverage_report_everyone_seated():
    profiles = generate_sample_profiles(44, seed=31)
    result = create_dinner_tables(profiles)
    report = generate_coverage_report(result, profiles)

    assert report['total_profiles'] == 44
    assert report['seated'] == 44
    assert report['missing'] == []
    assert report['duplicated'] == []
    assert report['count_mismatches'] == []
    assert len(report['needs_attention']) == result.highlighted_count


def test_coverage_report_lists_flagged_people():
    profiles = make_profiles(3, 18)
    result = create_dinner_tables(profiles)
    report = generate_coverage_report(result, profiles)

    assert report['needs_attention']
    person = report['needs_attention'][0]
    assert set(person) == {"name", "table", "reason"}
    assert person['reason']


def test_coverage_report_spots_missing_people():
    profiles = make_profiles(2, 6)
    result = create_dinner_tables(profiles)
    result.groups[0].seats.pop()
    removed = result.groups[0].members.pop()

    report = generate_coverage_report(result, profiles)
    assert report['missing'] == [removed.name]
    assert report['seated'] == 7


# -------------------------------
# AI review
# -------------------------------

def test_review_without_key():
    result = create_dinner_tables(make_profiles(3, 18))
    review = review_tables_ai(result)

    assert review['overall'] == 'AI review skipped: OPENAI_API_KEY not set'
    assert review['issues'] == []
    assert review['flagged_tables']


def test_review_parses_response(monkeypatch):
    completions = FakeCompletions(content="""ISSUES:
- Table 3 has no women

SUGGESTIONS:
- Swap Person 1 into Table 3
* Ask an organizer to sit with Table 3

OVERALL: Acceptable""")
    monkeypatch.setattr(matcher, 'get_client', lambda: fake_client(completions))

    review = review_tables_ai(create_dinner_tables(make_profiles(3, 18)))

    assert review['issues'] == ['Table 3 has no women']
    assert review['suggestions'] == ['Swap Person 1 into Table 3', 'Ask an organizer to sit with Table 3']
    assert review['overall'] == 'Acceptable'
    assert completions.calls[0]['model'] == 'gpt-4o-mini'


def test_review_survives_api_errors(monkeypatch):
    completions = FakeCompletions(error=RuntimeError('rate limited'))
    monkeypatch.setattr(matcher, 'get_client', lambda: fake_client(completions))

    review = review_tables_ai(create_dinner_tables(make_profiles(3, 18)))

    assert review['overall'] == 'AI review error: rate limited'


# -------------------------------
# Command line
# -------------------------------

def test_main_with_sample(tmp_path, capsys):
    exit_code = main(['--sample', '30', '--seed', '3', '--output', str(tmp_path), '--quiet'])

    assert exit_code == 0
    assert len(list(tmp_path.glob('dinner-groups-*.json'))) == 1
    assert len(list(tmp_path.glob('dinner-groups-*.csv'))) == 1
    with open(tmp_path / 'coverage.json') as f:
        assert json.load(f)['seated'] == 30
    assert 'COMPLETE!' in capsys.readouterr().out


def test_main_reads_file(tmp_path):
    path = tmp_path / 'signups.json'
    data = [{"name": f"Guest {i}", "gender": "Female" if i % 3 == 0 else "Male"} for i in range(24)]
    path.write_text(json.dumps(data), encoding='utf-8')

    assert main([str(path), '-q']) == 0
    assert (tmp_path / 'coverage.json').exists()


def test_main_blocks_small_lists(tmp_path, capsys):
    assert main(['--sample', '10', '--output', str(tmp_path)]) == 1
    assert 'Cannot proceed' in capsys.readouterr().out
    assert not (tmp_path / 'coverage.json').exists()


def test_main_bad_file(tmp_path):
    assert main([str(tmp_path / 'missing.csv')]) == 1
    assert main([]) == 1


def test_main_with_ai_review_and_no_key(tmp_path, capsys):
    assert main(['--sample', '24', '--seed', '4', '-o', str(tmp_path), '-q', '--ai-review']) == 0
    assert 'AI review skipped' in capsys.readouterr().out


def test_main_rejects_impossible_sizes(tmp_path, capsys):
    assert main(['--sample', '30', '--min-size', '9', '-o', str(tmp_path)]) == 1
    assert 'Invalid table sizes' in capsys.readouterr().out

    # an explicit 0 is not silently replaced by the default
    assert main(['--sample', '30', '--min-size', '0', '-o', str(tmp_path)]) == 1
    assert not (tmp_path / 'coverage.json').exists()


def test_main_rejects_wrongly_typed_json(tmp_path, capsys):
    path = tmp_path / 'signups.json'
    path.write_text(json.dumps([{"name": f"Guest {i}", "introvert_score": "8"} for i in range(20)]),
                    encoding='utf-8')

    assert main([str(path)]) == 1
    assert 'introvert_score must be a number' in capsys.readouterr().out
