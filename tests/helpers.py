from profiles import Profile


def make_profile(index, gender='Male', introvert_score=5, university='IIT Delhi', **overrides):
    """A fully answered profile; every quiz answer is the same unless overridden."""
    fields = dict(
        id=f'p{index}',
        name=f'Person {index}',
        phone=f'+9100000000{index:02d}',
        university=university,
        year='Second',
        gender=gender,
        instagram=f'person{index}',
        city='Delhi',
        course='Design',
        spontaneous_preference=True,
        personality_type='Smart',
        introvert_score=introvert_score,
        creative_score=5,
        college_life_score=5,
        social_score=5,
        family_importance=5,
        humor_importance=5,
        academic_importance=5,
        fitness_active=True,
        weekend_plan='Partying',
        music_vibe='Indie',
        college_vibe='Balanced',
        relationship_status='Single',
    )
    fields.update(overrides)
    return Profile(**fields)


def make_profiles(women, men, start=0, **overrides):
    """`women` female profiles followed by `men` male ones."""
    profiles = []
    for i in range(women):
        profiles.append(make_profile(start + i, gender='Female', **overrides))
    for i in range(men):
        profiles.append(make_profile(start + women + i, gender='Male', **overrides))
    return profiles


