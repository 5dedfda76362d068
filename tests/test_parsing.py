from linguatown.parsing import CONTINUE, END, NO_CORRECTION, parse_control_tag, parse_evaluation, parse_hint


def test_end_tag_is_stripped() -> None:
    parsed = parse_control_tag('[END] Goodbye!')
    assert parsed.ok
    assert parsed.value == (END, 'Goodbye!')


def test_continue_tag_is_stripped_after_leading_whitespace() -> None:
    parsed = parse_control_tag('  [CONTINUE] What else?')
    assert parsed.ok
    assert parsed.value == (CONTINUE, 'What else?')


def test_missing_tag_defaults_to_continue() -> None:
    parsed = parse_control_tag('What else can I get you?')
    assert not parsed.ok
    assert parsed.failure == 'no control tag'
    assert parsed.value == (CONTINUE, 'What else can I get you?')


def test_tag_only_counts_at_the_start() -> None:
    parsed = parse_control_tag('Thanks! [END]')
    assert parsed.value.kind == CONTINUE


def test_hint_is_split_from_reply() -> None:
    parsed = parse_hint('Ciao! Cosa desidera? HINT: Tell her what you want to buy.')
    assert parsed.ok
    assert parsed.value.text == 'Ciao! Cosa desidera?'
    assert parsed.value.hint == 'Tell her what you want to buy.'


def test_hint_marker_is_case_insensitive() -> None:
    parsed = parse_hint('Hello there. hint: Say hello back.')
    assert parsed.value == ('Hello there.', 'Say hello back.')


def test_reply_without_hint() -> None:
    parsed = parse_hint('Just a reply.')
    assert parsed.failure == 'no hint marker'
    assert parsed.value == ('Just a reply.', None)


def test_empty_hint_is_omitted() -> None:
    parsed = parse_hint('Reply text HINT:   ')
    assert parsed.failure == 'empty hint'
    assert parsed.value == ('Reply text', None)


def test_ok_verdict() -> None:
    parsed = parse_evaluation('OK: Great sentence!')
    assert parsed.ok
    assert parsed.value is NO_CORRECTION
    assert parsed.value.to_dict() == {'needsCorrection': False}


def test_correction_verdict_with_errors() -> None:
    parsed = parse_evaluation('correction: Say "io sono". Error: wrong verb form. Also fine otherwise')
    assert parsed.ok
    evaluation = parsed.value
    assert evaluation.needs_correction
    assert evaluation.correction.startswith('Say "io sono"')
    assert evaluation.errors == ['wrong verb form']
    assert evaluation.to_dict()['needsCorrection'] is True


def test_unrecognized_verdict_fails_open() -> None:
    parsed = parse_evaluation('That looks mostly fine to me')
    assert parsed.failure == 'unrecognized verdict'
    assert parsed.value.needs_correction is False


def test_empty_correction_is_treated_as_no_correction() -> None:
    parsed = parse_evaluation('CORRECTION:   ')
    assert parsed.failure == 'empty correction'
    assert parsed.value.needs_correction is False


def test_empty_input_never_raises() -> None:
    assert parse_control_tag(None).value == (CONTINUE, '')
    assert parse_hint(None).value == ('', None)
    assert parse_evaluation(None).value is NO_CORRECTION


def test_hint_split_keeps_offsets_with_non_ascii_text() -> None:
    parsed = parse_hint('Die Straße ist dort. HINT: Bedanke dich.')
    assert parsed.value == ('Die Straße ist dort.', 'Bedanke dich.')
    parsed = parse_hint('Das ist ﬂach und groß. hint: Frag nach dem Preis.')
    assert parsed.value == ('Das ist ﬂach und groß.', 'Frag nach dem Preis.')


def test_only_the_last_hint_marker_splits() -> None:
    parsed = parse_hint('Say "HINT: no". HINT: Answer politely.')
    assert parsed.value == ('Say "HINT: no".', 'Answer politely.')


def test_verdict_prefix_with_non_ascii_body() -> None:
    parsed = parse_evaluation('Correction: „Straße“ statt „Strasse“.')
    assert parsed.value.correction == '„Straße“ statt „Strasse“.'


def test_verdict_examples() -> None:
    assert parse_evaluation('OK: fine').value.needs_correction is False
    correction = parse_evaluation('CORRECTION: use X instead').value
    assert (correction.needs_correction, correction.correction) == (True, 'use X instead')
    assert parse_evaluation('Sure, fine').value.needs_correction is False
