"""Console UI for linguahub."""

from core.config import PLACEHOLDER_FORM
from cli.api_client import LinguaAPIClient


class ConsoleUI:
    """Renders API results on the console."""

    def __init__(self, client: LinguaAPIClient):
        self.client = client

    def print_word_info(self, info: dict):
        """Print a lookup envelope: definitions, gender, conjugations, examples."""
        print('\n' + '=' * 60)
        print(f"{info['word'].upper()}")
        print('=' * 60)
        if not info.get('success'):
            for entry in info.get('entries', []):
                for definition in entry.get('definitions', []):
                    print(f"  {definition['text']}")
            return

        for entry in info['entries']:
            heading = entry['partOfSpeech']
            if entry.get('article'):
                heading += f" ({entry['article']}, {entry['gender']})"
            if entry.get('isIrregular'):
                heading += ' - irregular'
            print(f'\n{heading}')
            for i, definition in enumerate(entry['definitions'], 1):
                print(f"  {i}. {definition['text']}")
                for example in definition.get('examples', []):
                    print(f"     \"{example['sourceText']}\" - {example.get('translatedText', '')}")

            conjugations = entry.get('conjugations') or {}
            for tense, cells in conjugations.items():
                forms = ', '.join(cell['form'] for cell in cells)
                print(f'  {tense}: {forms}')

            for example in entry.get('tenseExamples') or []:
                print(f"  [{example['tense']}] {example['sourceText']} / {example['translatedText']}")
        print('-' * 60)

    def print_words(self, result: dict):
        words = result['words']
        if not words:
            print('Your word bank is empty.')
            return
        print(f"\n{result['total']} words")
        for item in words:
            definition = item['primary_definition'] or PLACEHOLDER_FORM
            print(f"  {item['term']:<20} {definition:<30} [{item['category']}] mastery {item['mastery_score']}")

    def print_added(self, result: dict):
        item = result['item']
        print(f"Added '{item['term']}' to {item['category']}.")
        stats = result['stats']
        print(f"Level {stats['level']} - {stats['current_level_xp']}/{stats['xp_for_next_level']} XP")
        if result.get('level_up'):
            print(f"\n*** LEVEL UP! Now at level {stats['level']} ***\n")

    def print_stats(self, stats: dict):
        print('\n' + '=' * 50)
        print('PROGRESS')
        print('=' * 50)
        print(f"Level: {stats['level']}")
        print(f"Total XP: {stats['total_xp']}")
        print(f"Progress: {stats['current_level_xp']}/{stats['xp_for_next_level']} ({stats['progress_percent']}%)")
        print(f"Streak: {stats['streak_days']} day(s)")

    def print_usage(self, usage: dict):
        print(f"\nUsage for {usage['date']}")
        if usage.get('is_premium'):
            print('Premium: no limits apply')
        for key, count in usage['counters'].items():
            print(f"  {key:<20} {count}/{usage['limits'][key]}")

    def run_review(self, category: str = None, smart: bool = True):
        """Flashcard loop: show the term, reveal the definition, record the answer."""
        words = self.client.get_review(category, smart)['words']
        if not words:
            print('Nothing to review.')
            return
        correct_count = 0
        for item in words:
            print(f"\n{item['term']}")
            input('  (press Enter to reveal) ')
            print(f"  {item['primary_definition'] or PLACEHOLDER_FORM}")
            answer = input('  Did you know it? [y/n] ').strip().lower()
            correct = answer.startswith('y')
            result = self.client.record_study(item['id'], correct)
            if correct:
                correct_count += 1
            print(f"  Mastery: {result['mastery_score']}")
        print(f'\nSession complete: {correct_count}/{len(words)} correct')
